"""
Motor-baseline calibration helpers.

The baseline is a learner's raw tap latency. Every timing threshold of the
engine is a multiple of it, so a slow device or a slow hand does not read as
"not yet learned".
"""

import logging
import math
from typing import List, Optional, Sequence

from .config import DEFAULT_CONFIG, AdaptiveConfig, derive_scaled_config
from .constants import CALIBRATION_BANDS, CALIBRATION_WARMUP_TRIALS
from .deadline import DeadlineTracker
from .models import CalibrationThreshold
from .selector import AdaptiveSelector
from .utils import compute_median

logger = logging.getLogger(__name__)


def compute_baseline(
    trial_times: Sequence[float],
    warmup_trials: int = CALIBRATION_WARMUP_TRIALS,
) -> int:
    """
    Motor baseline from a run of calibration taps.

    The first ``warmup_trials`` taps are discarded: learners are still
    orienting and those taps inflate the median.

    Raises:
        ValueError: If a sample is not a positive finite number or no
            samples remain after the warm-up.
    """
    for t in trial_times:
        if not math.isfinite(t) or t <= 0:
            raise ValueError(f"Invalid calibration sample: {t}")
    measured = list(trial_times)[warmup_trials:]
    median = compute_median(measured)
    if median is None:
        raise ValueError(
            f"Need more than {warmup_trials} calibration samples, got {len(trial_times)}."
        )
    return round(median)


def calibration_thresholds(baseline: float) -> List[CalibrationThreshold]:
    """Labelled speed bands for displaying a calibration result."""
    return [
        CalibrationThreshold(
            label=label,
            max_ms=round(baseline * ratio) if ratio is not None else None,
            meaning=meaning,
        )
        for label, ratio, meaning in CALIBRATION_BANDS
    ]


def apply_baseline(
    selector: AdaptiveSelector,
    baseline: float,
    tracker: Optional[DeadlineTracker] = None,
    base: AdaptiveConfig = DEFAULT_CONFIG,
) -> AdaptiveConfig:
    """
    Rescale the selector's (and optionally a deadline tracker's) timing
    thresholds to a measured baseline. Historical stats are untouched.
    """
    scaled = derive_scaled_config(baseline, base)
    selector.update_config(scaled)
    if tracker is not None:
        tracker.update_config(scaled)
    logger.info(f"Applied motor baseline of {baseline}ms")
    return scaled
