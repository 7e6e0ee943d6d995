"""
Per-item adaptive answer deadlines.

A staircase that tightens after correct answers and eases off after wrong
ones or timeouts, bounded by the active timing config.
"""

import logging
from typing import Optional, Tuple

from .config import DEFAULT_DEADLINE_CONFIG, AdaptiveConfig, DeadlineConfig
from .storage import StorageAdapter

logger = logging.getLogger(__name__)


def _deadline_bounds(
    adaptive_cfg: AdaptiveConfig, dl_cfg: DeadlineConfig
) -> Tuple[int, int]:
    min_deadline = round(adaptive_cfg.min_time * dl_cfg.min_deadline_margin)
    max_deadline = round(adaptive_cfg.max_response_time)
    return min_deadline, max(min_deadline, max_deadline)


def compute_initial_deadline(
    ewma: Optional[float], adaptive_cfg: AdaptiveConfig, dl_cfg: DeadlineConfig
) -> int:
    """
    Cold-start deadline for an item.

    Items with history start at ``ewma * ewma_multiplier``; unseen items get
    the generous ceiling. Clamped to [min deadline, max_response_time].
    """
    min_deadline, max_deadline = _deadline_bounds(adaptive_cfg, dl_cfg)
    if ewma is None:
        return max_deadline
    return round(
        max(min_deadline, min(max_deadline, ewma * dl_cfg.ewma_multiplier))
    )


def adjust_deadline(
    current_deadline: float,
    correct: bool,
    adaptive_cfg: AdaptiveConfig,
    dl_cfg: DeadlineConfig,
    response_time: Optional[float] = None,
) -> int:
    """
    Move a deadline after an outcome.

    Wrong answers and timeouts multiply by ``increase_factor``. Correct
    answers take the tighter of the staircase step and
    ``response_time * headroom_multiplier``, but never drop below
    ``current * max_drop_factor`` in a single step.
    """
    min_deadline, max_deadline = _deadline_bounds(adaptive_cfg, dl_cfg)

    if not correct:
        adjusted = round(current_deadline * dl_cfg.increase_factor)
        return max(min_deadline, min(max_deadline, adjusted))

    target = round(current_deadline * dl_cfg.decrease_factor)
    if response_time is not None and response_time > 0:
        anchored = round(response_time * dl_cfg.headroom_multiplier)
        target = min(target, anchored)
    floor = round(current_deadline * dl_cfg.max_drop_factor)
    adjusted = max(target, floor)
    return max(min_deadline, min(max_deadline, adjusted))


class DeadlineTracker:
    """Manages persisted per-item deadlines for one namespace."""

    def __init__(
        self,
        storage: StorageAdapter,
        adaptive_cfg: AdaptiveConfig,
        dl_cfg: DeadlineConfig = DEFAULT_DEADLINE_CONFIG,
    ):
        self.storage = storage
        self.adaptive_cfg = adaptive_cfg
        self.dl_cfg = dl_cfg

    def _scaled_cfg(self, response_count: int) -> AdaptiveConfig:
        return self.adaptive_cfg.scaled_for_responses(response_count)

    def get_deadline(
        self, item_id: str, ewma: Optional[float], response_count: int = 1
    ) -> int:
        """
        Current deadline for an item, cold-starting (and persisting) one from
        the EWMA if none is stored.
        """
        stored = self.storage.get_deadline(item_id)
        if stored is not None and stored > 0:
            return round(stored)
        initial = compute_initial_deadline(
            ewma, self._scaled_cfg(response_count), self.dl_cfg
        )
        self.storage.save_deadline(item_id, initial)
        return initial

    def record_outcome(
        self,
        item_id: str,
        correct: bool,
        response_count: int = 1,
        response_time: Optional[float] = None,
    ) -> Optional[int]:
        """
        Adjust and persist an item's deadline after an answer or timeout.

        Returns:
            The new deadline, or None if the item has no deadline yet
            (``get_deadline`` was never called for it).
        """
        current = self.storage.get_deadline(item_id)
        if current is None:
            logger.debug(f"No deadline stored for '{item_id}'; outcome ignored.")
            return None
        new_deadline = adjust_deadline(
            current,
            correct,
            self._scaled_cfg(response_count),
            self.dl_cfg,
            response_time,
        )
        self.storage.save_deadline(item_id, new_deadline)
        return new_deadline

    def update_config(self, adaptive_cfg: AdaptiveConfig) -> None:
        """Swap the timing config, e.g. after baseline calibration."""
        self.adaptive_cfg = adaptive_cfg
