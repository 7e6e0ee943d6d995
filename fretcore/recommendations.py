"""
Consolidate-before-expanding recommendations.

Given a partition of the item universe into groups, decide which started
groups to keep practising and whether the learner has retained enough to be
offered one new group. The computation is pure: it reads the selector's
query surface at a single caller-supplied "now".
"""

import logging
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Set

from .config import AdaptiveConfig
from .models import GroupDef, GroupSummary, ItemStats
from .utils import compute_median

logger = logging.getLogger(__name__)

SortComparator = Callable[[GroupSummary, GroupSummary], float]


class LearnerQueries(Protocol):
    """The read-only part of the selector the engine depends on."""

    def get_stats(self, item_id: str) -> Optional[ItemStats]: ...

    def get_recall(self, item_id: str, now_ms: Optional[float] = None) -> float: ...


@dataclass
class RecommendationResult:
    recommended: Set[int]
    enabled: Optional[Set[int]]
    consolidate_indices: List[int] = field(default_factory=list)
    consolidate_due_count: int = 0
    expand_index: Optional[int] = None
    expand_new_count: int = 0
    consolidation_ratio: Optional[float] = None
    enabled_item_ids: Optional[List[str]] = None


def summarize_group(
    selector: LearnerQueries,
    group: GroupDef,
    recall_threshold: float,
    now_ms: float,
) -> GroupSummary:
    """
    Count unseen, due and mastered items in a group.

    An item is unseen with no recorded responses, mastered when its recall is
    at or above ``recall_threshold``, and due otherwise.
    """
    due = unseen = mastered = 0
    for item_id in group.item_ids:
        stats = selector.get_stats(item_id)
        if stats is None or stats.count == 0:
            unseen += 1
        elif selector.get_recall(item_id, now_ms) >= recall_threshold:
            mastered += 1
        else:
            due += 1
    return GroupSummary(
        index=group.index,
        due_count=due,
        unseen_count=unseen,
        mastered_count=mastered,
        total_count=len(group.item_ids),
        label=group.label,
    )


def summarize_groups(
    selector: LearnerQueries,
    groups: Sequence[GroupDef],
    config: AdaptiveConfig,
    now_ms: float,
) -> List[GroupSummary]:
    """Summaries for every group, in group-index order."""
    ordered = sorted(groups, key=lambda g: g.index)
    return [
        summarize_group(selector, group, config.recall_threshold, now_ms)
        for group in ordered
    ]


def _first_unstarted(
    unstarted: List[GroupSummary], sort_unstarted: Optional[SortComparator]
) -> GroupSummary:
    # `unstarted` is already in index order and sorted() is stable, so ties
    # under the comparator fall back to the lower index.
    if sort_unstarted is None:
        return unstarted[0]
    return sorted(unstarted, key=cmp_to_key(sort_unstarted))[0]


def compute_recommendations(
    selector: LearnerQueries,
    groups: Sequence[GroupDef],
    config: AdaptiveConfig,
    now_ms: float,
    sort_unstarted: Optional[SortComparator] = None,
) -> RecommendationResult:
    """
    Decide which groups to recommend and whether to expand to a new one.

    1. Partition groups into started (some item has responses) and unstarted.
    2. Consolidation ratio = mastered / seen across started groups.
    3. Recommend every started group whose work remaining (due + unseen) is
       at or above the median work remaining.
    4. If the ratio reaches ``expansion_threshold``, also recommend exactly
       one unstarted group (first by ``sort_unstarted``, else lowest index).
    5. On first launch (nothing started) recommend and enable the first
       unstarted group so a "use suggestion" action works immediately.

    Args:
        selector: Anything exposing ``get_stats`` and ``get_recall``.
        groups: Group definitions; empty groups are never recommended.
        config: Supplies ``recall_threshold`` and ``expansion_threshold``.
        now_ms: The single "now" used for every recall query.
        sort_unstarted: Optional comparator ordering unstarted groups.

    Returns:
        A RecommendationResult; ``enabled`` is None except on first launch.
    """
    groups_by_index: Dict[int, GroupDef] = {g.index: g for g in groups}
    summaries = summarize_groups(selector, groups, config, now_ms)

    started = [s for s in summaries if s.is_started]
    unstarted = [
        s for s in summaries if not s.is_started and s.total_count > 0
    ]

    if not started:
        if not unstarted:
            logger.debug("No groups with items; nothing to recommend.")
            return RecommendationResult(recommended=set(), enabled=None)
        first = _first_unstarted(unstarted, sort_unstarted)
        logger.debug(f"First launch: suggesting group {first.index}")
        return RecommendationResult(
            recommended={first.index},
            enabled={first.index},
            expand_index=first.index,
            expand_new_count=first.total_count,
            enabled_item_ids=list(groups_by_index[first.index].item_ids),
        )

    total_seen = sum(s.seen_count for s in started)
    total_mastered = sum(s.mastered_count for s in started)
    ratio = total_mastered / total_seen if total_seen > 0 else None

    ranked = sorted(started, key=lambda s: (-s.work_remaining, s.index))
    median_work = compute_median([s.work_remaining for s in ranked])
    consolidate = [s for s in ranked if s.work_remaining >= median_work]

    result = RecommendationResult(
        recommended={s.index for s in consolidate},
        enabled=None,
        consolidate_indices=[s.index for s in consolidate],
        consolidate_due_count=sum(s.work_remaining for s in consolidate),
        consolidation_ratio=ratio,
    )

    if ratio is not None and ratio >= config.expansion_threshold and unstarted:
        expand = _first_unstarted(unstarted, sort_unstarted)
        result.recommended.add(expand.index)
        result.expand_index = expand.index
        result.expand_new_count = expand.total_count

    logger.debug(
        f"Recommendations: consolidate={result.consolidate_indices}, "
        f"ratio={ratio}, expand={result.expand_index}"
    )
    return result
