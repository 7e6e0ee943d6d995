"""
Adaptive question selection and per-item learning statistics.

The AdaptiveSelector chooses the next item from a caller-supplied enabled set,
favouring never-seen items (a fixed exploration boost), slow items and items
close to being forgotten. It is the only component with a storage
dependency; the forgetting model and the recommendation engine are pure.
"""

import logging
import math
import random
import time
from typing import Callable, Dict, Mapping, Optional, Sequence, Union

from .config import DEFAULT_CONFIG, AdaptiveConfig
from .forgetting import (
    clamp_response_time,
    compute_automaticity,
    compute_ewma,
    compute_speed_score,
    recall_of,
    update_memory,
)
from .models import ItemStats
from .storage import StorageAdapter

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


def compute_weight(
    stats: Optional[ItemStats], cfg: AdaptiveConfig, now_ms: float
) -> float:
    """
    Selection weight for a single item.

    - Unseen items get ``unseen_boost``, unscaled by anything else. Scaling it
      by a low-sample factor makes cold starts drill new items excessively.
    - Seen items get ``recall_factor * ewma / min_time`` where
      ``recall_factor = 1 + (1 - recall)``: slower items and items closer to
      being forgotten weigh more. The EWMA is floored at ``min_time`` so a
      seen item never weighs less than 1.
    """
    if stats is None or stats.count == 0:
        return cfg.unseen_boost
    speed_weight = max(stats.ewma, cfg.min_time) / cfg.min_time
    recall = recall_of(stats, now_ms)
    return (1 + (1 - recall)) * speed_weight


def select_weighted(
    items: Sequence[str], weights: Sequence[float], rand: float
) -> str:
    """
    Weighted random pick. ``rand`` is a uniform draw in [0, 1).

    Items with zero weight are never returned while the total is positive;
    with a zero total the pick is uniform over all items.
    """
    total = sum(weights)
    if total <= 0:
        return items[min(int(rand * len(items)), len(items) - 1)]
    remaining = rand * total
    last_positive = None
    for item, weight in zip(items, weights):
        if weight <= 0:
            continue
        if remaining < weight:
            return item
        remaining -= weight
        last_positive = item
    # Floating-point residue can walk past the end.
    return last_positive


class AdaptiveSelector:
    """
    Chooses the next item to drill and maintains per-item statistics.

    Storage, randomness and the clock are injected so that behaviour is
    deterministic under test. One selector owns one storage namespace.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        config: Optional[AdaptiveConfig] = None,
        random_fn: Callable[[], float] = random.random,
        clock: Optional[Callable[[], float]] = None,
        response_count_fn: Optional[Callable[[str], int]] = None,
    ):
        """
        Initialize the selector.

        Args:
            storage: Adapter holding the namespace's ItemStats records.
            config: Tuning configuration; defaults to DEFAULT_CONFIG.
            random_fn: Returns uniform floats in [0, 1).
            clock: Returns the current time in epoch ms; used whenever a call
                does not pass ``now_ms`` explicitly.
            response_count_fn: Number of separate responses an item needs
                (e.g. notes in a chord); timing thresholds scale with it.
        """
        self.storage = storage
        self._config = config or DEFAULT_CONFIG
        self._random_fn = random_fn
        self._clock = clock or _wall_clock_ms
        self._response_count_fn = response_count_fn
        self._last_selected: Optional[str] = None
        # Records whose write failed; kept so the session keeps working.
        self._unsaved: Dict[str, ItemStats] = {}

    # --- Configuration ---

    def get_config(self) -> AdaptiveConfig:
        return self._config

    def update_config(
        self, patch: Union[AdaptiveConfig, Mapping[str, float]]
    ) -> AdaptiveConfig:
        """
        Replace or patch the active configuration.

        Takes effect for subsequent selections and updates only; stored
        statistics are never rewritten.

        Raises:
            pydantic.ValidationError: If the patched config is invalid.
        """
        if isinstance(patch, AdaptiveConfig):
            self._config = patch
        else:
            self._config = self._config.merged(patch)
        logger.info("Adaptive config updated.")
        return self._config

    @property
    def last_selected(self) -> Optional[str]:
        return self._last_selected

    def _now(self, now_ms: Optional[float]) -> float:
        return self._clock() if now_ms is None else now_ms

    def _item_config(self, item_id: str) -> AdaptiveConfig:
        if self._response_count_fn is None:
            return self._config
        return self._config.scaled_for_responses(
            self._response_count_fn(item_id)
        )

    # --- Storage access ---

    def get_stats(self, item_id: str) -> Optional[ItemStats]:
        """
        Return the item's record, or None if it has never been answered.

        Read failures degrade to "unseen" instead of propagating.
        """
        if item_id in self._unsaved:
            return self._unsaved[item_id]
        try:
            return self.storage.get_stats(item_id)
        except Exception as e:
            logger.warning(
                f"Failed to read stats for '{item_id}', treating as unseen: {e}"
            )
            return None

    def _save_stats(self, item_id: str, stats: ItemStats) -> None:
        try:
            self.storage.save_stats(item_id, stats)
        except Exception as e:
            logger.warning(
                f"Failed to persist stats for '{item_id}', keeping in memory: {e}"
            )
            self._unsaved[item_id] = stats
        else:
            self._unsaved.pop(item_id, None)

    def has_unsaved(self, item_id: str) -> bool:
        """True if the item's latest record failed to reach storage."""
        return item_id in self._unsaved

    # --- Selection ---

    def get_weight(self, item_id: str, now_ms: Optional[float] = None) -> float:
        return compute_weight(
            self.get_stats(item_id), self._item_config(item_id), self._now(now_ms)
        )

    def select_next(
        self, enabled_items: Sequence[str], now_ms: Optional[float] = None
    ) -> str:
        """
        Pick the next item to present from the enabled set.

        The previously selected item gets weight 0 unless it is the only
        candidate. The chosen item becomes "last selected" for the next call;
        this is session state and is not persisted.

        Args:
            enabled_items: Non-empty candidate item ids.
            now_ms: Time used for recall weighting; defaults to the clock.

        Returns:
            The chosen item id.

        Raises:
            ValueError: If ``enabled_items`` is empty.
        """
        if not enabled_items:
            raise ValueError("enabled_items cannot be empty")

        if len(enabled_items) == 1:
            chosen = enabled_items[0]
        else:
            now = self._now(now_ms)
            weights = [
                0.0 if item_id == self._last_selected
                else self.get_weight(item_id, now)
                for item_id in enabled_items
            ]
            if sum(weights) > 0:
                chosen = select_weighted(
                    enabled_items, weights, self._random_fn()
                )
            else:
                pool = [
                    item_id for item_id in enabled_items
                    if item_id != self._last_selected
                ] or list(enabled_items)
                chosen = select_weighted(
                    pool, [0.0] * len(pool), self._random_fn()
                )

        self._last_selected = chosen
        logger.debug(
            f"Selected '{chosen}' from {len(enabled_items)} candidates"
        )
        return chosen

    # --- Updates ---

    def record_response(
        self,
        item_id: str,
        response_time_ms: float,
        correct: bool = True,
        now_ms: Optional[float] = None,
    ) -> ItemStats:
        """
        Record one answer and persist the updated statistics.

        The response time is clamped to ``[0, max_response_time]`` before it
        enters the EWMA; stability bookkeeping is delegated to the forgetting
        model.

        Args:
            item_id: The answered item.
            response_time_ms: Raw response time in ms.
            correct: Whether the answer was correct.
            now_ms: Epoch ms of the answer; defaults to the clock.

        Returns:
            The updated ItemStats record.

        Raises:
            ValueError: If the response time is negative or not finite.
        """
        if not math.isfinite(response_time_ms) or response_time_ms < 0:
            raise ValueError(
                f"Invalid response time: {response_time_ms}. Must be a non-negative number of ms."
            )
        now = self._now(now_ms)
        cfg = self._item_config(item_id)
        clamped = clamp_response_time(response_time_ms, cfg)
        existing = self.get_stats(item_id)

        if existing is None or existing.count == 0:
            ewma = clamped
            count = 1
        else:
            ewma = min(
                compute_ewma(existing.ewma, clamped, cfg.ewma_alpha),
                cfg.max_response_time,
            )
            count = existing.count + 1

        memory = update_memory(existing, clamped, correct, now, cfg)
        updated = ItemStats(
            ewma=ewma,
            count=count,
            stability=memory.stability,
            last_correct_at=memory.last_correct_at,
            last_seen_at=now,
        )
        self._save_stats(item_id, updated)
        logger.debug(
            f"Recorded {'correct' if correct else 'wrong'} answer for "
            f"'{item_id}' in {clamped:.0f}ms: stability={updated.stability}, "
            f"ewma={updated.ewma:.0f}, count={updated.count}"
        )
        return updated

    # --- Queries ---

    def get_recall(self, item_id: str, now_ms: Optional[float] = None) -> float:
        """Predicted retention in [0, 1]; 0 if never answered correctly."""
        return recall_of(self.get_stats(item_id), self._now(now_ms))

    def get_automaticity(
        self, item_id: str, now_ms: Optional[float] = None
    ) -> float:
        """Recall times speed score, in [0, 1]; 0 for unseen items."""
        stats = self.get_stats(item_id)
        if stats is None or stats.count == 0:
            return 0.0
        recall = recall_of(stats, self._now(now_ms))
        speed = compute_speed_score(stats.ewma, self._item_config(item_id))
        return compute_automaticity(recall, speed)

    def is_mastered(self, item_id: str, now_ms: Optional[float] = None) -> bool:
        return self.get_recall(item_id, now_ms) >= self._config.recall_threshold

    def is_fluent(self, item_id: str, now_ms: Optional[float] = None) -> bool:
        return (
            self.get_automaticity(item_id, now_ms)
            > self._config.automaticity_threshold
        )

    def check_all_mastered(
        self, item_ids: Sequence[str], now_ms: Optional[float] = None
    ) -> bool:
        """True if every item's recall is at or above the recall threshold."""
        now = self._now(now_ms)
        return bool(item_ids) and all(
            self.is_mastered(item_id, now) for item_id in item_ids
        )

    def check_all_automatic(
        self, item_ids: Sequence[str], now_ms: Optional[float] = None
    ) -> bool:
        """True if every item is fluent: both remembered and fast."""
        now = self._now(now_ms)
        return bool(item_ids) and all(
            self.is_fluent(item_id, now) for item_id in item_ids
        )

    def check_needs_review(
        self, item_ids: Sequence[str], now_ms: Optional[float] = None
    ) -> bool:
        """
        True when previously-fast material has decayed.

        Every item must have at least two responses, a correct answer and an
        EWMA at or below the automaticity target, and at least one item's
        recall must have fallen below the recall threshold.
        """
        if not item_ids:
            return False
        now = self._now(now_ms)
        has_due_item = False
        for item_id in item_ids:
            stats = self.get_stats(item_id)
            if stats is None or not stats.has_memory or stats.count < 2:
                return False
            if stats.ewma > self._item_config(item_id).automaticity_target:
                return False
            if recall_of(stats, now) < self._config.recall_threshold:
                has_due_item = True
        return has_due_item
