# fretcore/forgetting.py

"""
Half-life forgetting model.

Pure functions over an item's stability (half-life in hours) and the time of
its last correct answer. Nothing here touches storage; the selector feeds
records in and persists what comes out.

Recall follows P = 2 ** (-t / S): at t = 0 recall is 1, at t = S it is 0.5.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import AdaptiveConfig
from .constants import MS_PER_HOUR, SELF_CORRECTION_STABILITY_MULTIPLIER
from .models import ItemStats

logger = logging.getLogger(__name__)


@dataclass
class MemoryUpdate:
    stability: Optional[float]
    last_correct_at: Optional[float]
    self_corrected: bool = False


def compute_ewma(old_ewma: float, new_time: float, alpha: float) -> float:
    return alpha * new_time + (1 - alpha) * old_ewma


def clamp_response_time(response_time_ms: float, cfg: AdaptiveConfig) -> float:
    """Clamp a raw response time into [0, max_response_time]."""
    return min(max(response_time_ms, 0.0), cfg.max_response_time)


def elapsed_hours(since_ms: Optional[float], now_ms: float) -> Optional[float]:
    if since_ms is None:
        return None
    return (now_ms - since_ms) / MS_PER_HOUR


def compute_recall(
    stability_hours: Optional[float], elapsed: Optional[float]
) -> float:
    """
    Predicted probability of recall after ``elapsed`` hours.

    Items without a stability (never answered correctly) have recall 0:
    "not yet learned", which callers tell apart from "forgotten" by the
    response count. Negative elapsed time (clock skew) counts as no decay.
    """
    if stability_hours is None or elapsed is None:
        return 0.0
    if stability_hours <= 0:
        return 0.0
    if elapsed <= 0:
        return 1.0
    return 2.0 ** (-elapsed / stability_hours)


def recall_of(stats: Optional[ItemStats], now_ms: float) -> float:
    """Current recall for a stored record (0 for missing records)."""
    if stats is None or not stats.has_memory:
        return 0.0
    return compute_recall(
        stats.stability, elapsed_hours(stats.last_correct_at, now_ms)
    )


def compute_speed_score(ewma_ms: float, cfg: AdaptiveConfig) -> float:
    """
    Map a smoothed response time onto [0, 1].

    1.0 at or below ``automaticity_target``; past the target the score halves
    every ``automaticity_target - min_time`` ms (or every
    ``automaticity_target`` ms when the two coincide). Monotonically
    non-increasing in the EWMA.
    """
    target = cfg.automaticity_target
    if ewma_ms <= target:
        return 1.0
    half_life = target - cfg.min_time
    if half_life <= 0:
        half_life = target
    return 2.0 ** (-(ewma_ms - target) / half_life)


def compute_automaticity(recall: float, speed_score: float) -> float:
    """Automaticity combines "still remembered" with "answered fast"."""
    return recall * speed_score


def compute_speed_factor(response_time_ms: float, cfg: AdaptiveConfig) -> float:
    """
    Growth bonus for a correct answer, in [1, speed_bonus_max].

    Answers at or above the automaticity target get no bonus; the bonus rises
    linearly as the response approaches ``min_time``.
    """
    target = cfg.automaticity_target
    span = target - cfg.min_time
    if span <= 0:
        t = 1.0 if response_time_ms <= target else 0.0
    else:
        clamped = min(max(response_time_ms, cfg.min_time), target)
        t = (target - clamped) / span
    return 1.0 + t * (cfg.speed_bonus_max - 1.0)


def is_self_correction(
    old_stability: Optional[float],
    elapsed: Optional[float],
    response_time_ms: float,
    cfg: AdaptiveConfig,
) -> bool:
    """
    True when a fast correct answer arrives after a gap long enough that the
    model expected the item to be forgotten, i.e. the learner kept practising
    somewhere else.
    """
    if old_stability is None or elapsed is None or elapsed <= 0:
        return False
    if response_time_ms >= cfg.self_correction_threshold:
        return False
    return elapsed > cfg.self_correction_gap_factor * old_stability


def stability_after_correct(
    old_stability: Optional[float],
    response_time_ms: float,
    elapsed: Optional[float],
    cfg: AdaptiveConfig,
) -> float:
    """
    Compute the new stability after a correct answer.

    - First correct answer: ``initial_stability``.
    - Otherwise grow by ``stability_growth_base * speed_factor`` (both >= 1,
      so the growth path never shrinks stability).
    - Self-correction: raise to at least ``elapsed * 1.5``.

    The result is capped at ``max_stability`` (or the old stability, if that
    is already higher) and floored at ``initial_stability``.
    """
    if old_stability is None:
        return cfg.initial_stability

    speed_factor = compute_speed_factor(response_time_ms, cfg)
    new_stability = old_stability * cfg.stability_growth_base * speed_factor

    if is_self_correction(old_stability, elapsed, response_time_ms, cfg):
        new_stability = max(
            new_stability, elapsed * SELF_CORRECTION_STABILITY_MULTIPLIER
        )

    ceiling = max(cfg.max_stability, old_stability)
    return max(min(new_stability, ceiling), cfg.initial_stability)


def stability_after_wrong(
    old_stability: Optional[float], cfg: AdaptiveConfig
) -> Optional[float]:
    """
    Decay stability after a wrong answer, floored at ``initial_stability``.
    An item that was never answered correctly keeps no stability.
    """
    if old_stability is None:
        return None
    decayed = old_stability * (1 - cfg.stability_decay_on_wrong)
    return max(min(decayed, old_stability), cfg.initial_stability)


def update_memory(
    stats: Optional[ItemStats],
    response_time_ms: float,
    correct: bool,
    now_ms: float,
    cfg: AdaptiveConfig,
) -> MemoryUpdate:
    """
    Apply one response to an item's stability and last-correct timestamp.

    Args:
        stats: The record before this response, or None for a new item.
        response_time_ms: Clamped response time of this answer.
        correct: Whether the answer was correct.
        now_ms: Epoch ms of the response.
        cfg: Active configuration (already scaled for the item).

    Returns:
        A MemoryUpdate with the new stability and last-correct timestamp.
    """
    old_stability = stats.stability if stats else None
    last_correct_at = stats.last_correct_at if stats else None

    if not correct:
        return MemoryUpdate(
            stability=stability_after_wrong(old_stability, cfg),
            last_correct_at=last_correct_at,
        )

    elapsed = elapsed_hours(last_correct_at, now_ms)
    self_corrected = is_self_correction(
        old_stability, elapsed, response_time_ms, cfg
    )
    new_stability = stability_after_correct(
        old_stability, response_time_ms, elapsed, cfg
    )
    if self_corrected:
        logger.debug(
            f"Self-correction: gap of {elapsed:.1f}h exceeded stability "
            f"{old_stability:.1f}h; stability now {new_stability:.1f}h"
        )
    return MemoryUpdate(
        stability=new_stability,
        last_correct_at=now_ms,
        self_corrected=self_corrected,
    )
