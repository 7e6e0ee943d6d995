"""
Shared test values and builders. Importable as ``helpers`` because
``tests`` is on pytest's ``pythonpath``.
"""

from fretcore.constants import MS_PER_HOUR
from fretcore.models import ItemStats

# 2023-01-01T00:00:00Z in epoch ms; a fixed "now" keeps recall deterministic.
NOW_MS = 1_672_531_200_000.0
HOUR_MS = MS_PER_HOUR


class FakeClock:
    """Manually advanced clock returning epoch ms."""

    def __init__(self, start_ms: float = NOW_MS):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance_hours(self, hours: float) -> None:
        self.now_ms += hours * HOUR_MS


def make_stats(
    ewma: float = 2000.0,
    count: int = 3,
    stability: float = 4.0,
    hours_since_correct: float = 0.0,
    now_ms: float = NOW_MS,
) -> ItemStats:
    """Build an ItemStats record whose last correct answer was ``hours_since_correct`` ago."""
    last_correct = now_ms - hours_since_correct * HOUR_MS
    return ItemStats(
        ewma=ewma,
        count=count,
        stability=stability,
        last_correct_at=last_correct,
        last_seen_at=last_correct,
    )
