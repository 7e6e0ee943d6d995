"""
Tuning configuration for the adaptive engine.

AdaptiveConfig is immutable; a selector swaps in a new instance through
``update_config`` (e.g. after motor-baseline calibration), which only affects
subsequent selections and updates.
"""

import logging
import math
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import (
    AUTOMATICITY_TARGET_RATIO,
    DEFAULT_AUTOMATICITY_THRESHOLD,
    DEFAULT_DEADLINE_DECREASE_FACTOR,
    DEFAULT_DEADLINE_EWMA_MULTIPLIER,
    DEFAULT_DEADLINE_HEADROOM_MULTIPLIER,
    DEFAULT_DEADLINE_INCREASE_FACTOR,
    DEFAULT_DEADLINE_MAX_DROP_FACTOR,
    DEFAULT_EWMA_ALPHA,
    DEFAULT_EXPANSION_THRESHOLD,
    DEFAULT_INITIAL_STABILITY,
    DEFAULT_MAX_STABILITY,
    DEFAULT_MIN_DEADLINE_MARGIN,
    DEFAULT_RECALL_THRESHOLD,
    DEFAULT_SELF_CORRECTION_GAP_FACTOR,
    DEFAULT_SPEED_BONUS_MAX,
    DEFAULT_STABILITY_DECAY_ON_WRONG,
    DEFAULT_STABILITY_GROWTH_BASE,
    DEFAULT_UNSEEN_BOOST,
    MAX_RESPONSE_TIME_RATIO,
    MIN_TIME_RATIO,
    REFERENCE_BASELINE_MS,
    SELF_CORRECTION_RATIO,
)

logger = logging.getLogger(__name__)

# Fields expressed in ms that scale with the motor baseline.
TIMING_FIELDS = (
    "min_time",
    "automaticity_target",
    "self_correction_threshold",
    "max_response_time",
)


class AdaptiveConfig(BaseModel):
    """Configuration for the adaptive selector and forgetting model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Selection
    unseen_boost: float = Field(default=DEFAULT_UNSEEN_BOOST, gt=0)
    ewma_alpha: float = Field(default=DEFAULT_EWMA_ALPHA, gt=0, le=1)

    # Timing (ms)
    min_time: float = Field(
        default=REFERENCE_BASELINE_MS * MIN_TIME_RATIO, gt=0
    )
    automaticity_target: float = Field(
        default=REFERENCE_BASELINE_MS * AUTOMATICITY_TARGET_RATIO, gt=0
    )
    self_correction_threshold: float = Field(
        default=REFERENCE_BASELINE_MS * SELF_CORRECTION_RATIO, gt=0
    )
    max_response_time: float = Field(
        default=REFERENCE_BASELINE_MS * MAX_RESPONSE_TIME_RATIO, gt=0
    )

    # Forgetting model (hours)
    initial_stability: float = Field(default=DEFAULT_INITIAL_STABILITY, gt=0)
    max_stability: float = Field(default=DEFAULT_MAX_STABILITY, gt=0)
    stability_growth_base: float = Field(
        default=DEFAULT_STABILITY_GROWTH_BASE, ge=1
    )
    stability_decay_on_wrong: float = Field(
        default=DEFAULT_STABILITY_DECAY_ON_WRONG, ge=0, le=1
    )
    speed_bonus_max: float = Field(default=DEFAULT_SPEED_BONUS_MAX, ge=1)
    self_correction_gap_factor: float = Field(
        default=DEFAULT_SELF_CORRECTION_GAP_FACTOR, gt=0
    )

    # Mastery gates
    recall_threshold: float = Field(
        default=DEFAULT_RECALL_THRESHOLD, ge=0, le=1
    )
    expansion_threshold: float = Field(
        default=DEFAULT_EXPANSION_THRESHOLD, ge=0, le=1
    )
    automaticity_threshold: float = Field(
        default=DEFAULT_AUTOMATICITY_THRESHOLD, ge=0, le=1
    )

    @model_validator(mode="after")
    def check_timing_order(self) -> "AdaptiveConfig":
        """Timing thresholds must be ordered min <= target <= max."""
        if self.automaticity_target < self.min_time:
            raise ValueError(
                "automaticity_target must be >= min_time "
                f"({self.automaticity_target} < {self.min_time})."
            )
        if self.max_response_time < self.automaticity_target:
            raise ValueError(
                "max_response_time must be >= automaticity_target "
                f"({self.max_response_time} < {self.automaticity_target})."
            )
        if self.max_stability < self.initial_stability:
            raise ValueError(
                "max_stability must be >= initial_stability "
                f"({self.max_stability} < {self.initial_stability})."
            )
        return self

    def merged(self, patch: Mapping[str, Any]) -> "AdaptiveConfig":
        """
        Return a validated copy with ``patch`` applied.

        Unknown keys and invalid values raise pydantic.ValidationError.
        """
        return AdaptiveConfig.model_validate({**self.model_dump(), **patch})

    def scaled_for_responses(self, response_count: int) -> "AdaptiveConfig":
        """
        Scale timing thresholds for items answered with several separate
        responses (e.g. spelling every note of a chord).
        """
        if response_count <= 1:
            return self
        return self.model_copy(
            update={
                name: getattr(self, name) * response_count
                for name in TIMING_FIELDS
            }
        )


class DeadlineConfig(BaseModel):
    """Configuration for the per-item deadline staircase."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    decrease_factor: float = Field(
        default=DEFAULT_DEADLINE_DECREASE_FACTOR, gt=0, le=1
    )
    increase_factor: float = Field(
        default=DEFAULT_DEADLINE_INCREASE_FACTOR, ge=1
    )
    min_deadline_margin: float = Field(
        default=DEFAULT_MIN_DEADLINE_MARGIN, gt=0
    )
    ewma_multiplier: float = Field(
        default=DEFAULT_DEADLINE_EWMA_MULTIPLIER, gt=0
    )
    headroom_multiplier: float = Field(
        default=DEFAULT_DEADLINE_HEADROOM_MULTIPLIER, gt=0
    )
    max_drop_factor: float = Field(
        default=DEFAULT_DEADLINE_MAX_DROP_FACTOR, gt=0, le=1
    )


DEFAULT_CONFIG = AdaptiveConfig()
DEFAULT_DEADLINE_CONFIG = DeadlineConfig()


def derive_scaled_config(
    motor_baseline: float, base: AdaptiveConfig = DEFAULT_CONFIG
) -> AdaptiveConfig:
    """
    Derive a config whose timing thresholds are proportional to a measured
    motor baseline.

    The base config is assumed to be calibrated for REFERENCE_BASELINE_MS;
    every timing field is multiplied by ``motor_baseline / 1000`` and rounded
    to whole milliseconds. Non-timing fields are carried over unchanged.

    Raises:
        ValueError: If the baseline is not a positive finite number.
    """
    if not math.isfinite(motor_baseline) or motor_baseline <= 0:
        raise ValueError(
            f"Invalid motor baseline: {motor_baseline}. Must be a positive number of ms."
        )
    scale = motor_baseline / REFERENCE_BASELINE_MS
    scaled = {
        name: float(max(1, round(getattr(base, name) * scale)))
        for name in TIMING_FIELDS
    }
    logger.debug(f"Derived scaled config for baseline {motor_baseline}ms: {scaled}")
    return base.merged(scaled)
