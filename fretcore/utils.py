"""Small numeric helpers shared across the engine."""

from typing import Optional, Sequence


def compute_median(values: Sequence[float]) -> Optional[float]:
    """
    Median of a sequence without mutating it.

    Returns:
        The middle value (mean of the two middle values for even lengths),
        or None for an empty sequence.
    """
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2
