import pytest

from fretcore.config import DEFAULT_CONFIG
from fretcore.models import GroupDef, ItemStats
from fretcore.recommendations import (
    compute_recommendations,
    summarize_group,
    summarize_groups,
)
from fretcore.selector import AdaptiveSelector

from helpers import NOW_MS, make_stats


def _mastered(storage, item_ids):
    for item_id in item_ids:
        storage.save_stats(item_id, make_stats(hours_since_correct=0))


def _due(storage, item_ids):
    """Seen but never answered correctly, so recall is 0."""
    for item_id in item_ids:
        storage.save_stats(item_id, ItemStats(ewma=2500, count=1, last_seen_at=NOW_MS))


def _group(index, size, prefix=None):
    prefix = prefix or f"g{index}"
    return GroupDef(index=index, item_ids=[f"{prefix}-{n}" for n in range(size)])


@pytest.fixture
def engine(storage, clock):
    return AdaptiveSelector(storage, clock=clock)


class TestSummaries:
    def test_summarize_group_counts(self, engine, storage):
        group = _group(0, 5)
        _mastered(storage, ["g0-0", "g0-1"])
        _due(storage, ["g0-2"])
        summary = summarize_group(engine, group, 0.5, NOW_MS)
        assert summary.mastered_count == 2
        assert summary.due_count == 1
        assert summary.unseen_count == 2
        assert summary.total_count == 5
        assert summary.work_remaining == 3
        assert summary.seen_count == 3
        assert summary.is_started

    def test_recall_exactly_at_threshold_is_mastered(self, engine, storage):
        storage.save_stats("g0-0", make_stats(stability=4.0, hours_since_correct=4.0))
        summary = summarize_group(engine, _group(0, 1), 0.5, NOW_MS)
        assert summary.mastered_count == 1
        assert summary.due_count == 0

    def test_decayed_item_is_due(self, engine, storage):
        storage.save_stats("g0-0", make_stats(stability=4.0, hours_since_correct=8.0))
        summary = summarize_group(engine, _group(0, 1), 0.5, NOW_MS)
        assert summary.due_count == 1

    def test_summarize_groups_sorted_by_index(self, engine):
        groups = [_group(2, 1), _group(0, 1), _group(1, 1)]
        summaries = summarize_groups(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert [s.index for s in summaries] == [0, 1, 2]

    def test_works_with_any_query_object(self):
        class StubQueries:
            def get_stats(self, item_id):
                return ItemStats(ewma=1000, count=1) if item_id == "a" else None

            def get_recall(self, item_id, now_ms=None):
                return 0.9

        summary = summarize_group(
            StubQueries(), GroupDef(index=0, item_ids=["a", "b"]), 0.5, NOW_MS
        )
        assert summary.mastered_count == 1
        assert summary.unseen_count == 1


class TestFirstLaunch:
    def test_first_group_recommended_and_enabled(self, engine, five_groups):
        result = compute_recommendations(engine, five_groups, DEFAULT_CONFIG, NOW_MS)
        assert result.recommended == {0}
        assert result.enabled == {0}
        assert result.enabled_item_ids == ["g0-0", "g0-1", "g0-2", "g0-3"]
        assert result.expand_index == 0
        assert result.expand_new_count == 4
        assert result.consolidation_ratio is None

    def test_first_launch_respects_sort(self, engine, five_groups):
        result = compute_recommendations(
            engine,
            five_groups,
            DEFAULT_CONFIG,
            NOW_MS,
            sort_unstarted=lambda a, b: b.index - a.index,
        )
        assert result.enabled == {4}

    def test_empty_groups_never_recommended(self, engine):
        groups = [GroupDef(index=0, item_ids=[]), _group(1, 3)]
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.recommended == {1}

    def test_no_groups(self, engine):
        result = compute_recommendations(engine, [], DEFAULT_CONFIG, NOW_MS)
        assert result.recommended == set()
        assert result.enabled is None


class TestExpansionGate:
    @pytest.fixture
    def groups(self):
        return [_group(0, 10), _group(1, 4), _group(2, 4)]

    def test_ratio_exactly_at_threshold_expands(self, engine, storage, groups):
        _mastered(storage, [f"g0-{n}" for n in range(7)])
        _due(storage, [f"g0-{n}" for n in range(7, 10)])
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidation_ratio == pytest.approx(0.7)
        assert result.recommended == {0, 1}
        assert result.expand_index == 1
        assert result.expand_new_count == 4
        assert result.enabled is None

    def test_ratio_below_threshold_does_not_expand(self, engine, storage, groups):
        _mastered(storage, [f"g0-{n}" for n in range(6)])
        _due(storage, [f"g0-{n}" for n in range(6, 10)])
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidation_ratio == pytest.approx(0.6)
        assert result.recommended == {0}
        assert result.expand_index is None

    def test_no_unstarted_groups_left(self, engine, storage):
        groups = [_group(0, 2), _group(1, 2)]
        _mastered(storage, ["g0-0", "g0-1", "g1-0", "g1-1"])
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidation_ratio == 1.0
        assert result.expand_index is None
        assert result.recommended == {0, 1}

    def test_sort_unstarted_picks_expansion_group(self, engine, storage):
        groups = [_group(0, 2), _group(1, 5), _group(2, 2)]
        _mastered(storage, ["g0-0", "g0-1"])

        by_index = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert by_index.expand_index == 1

        by_size = compute_recommendations(
            engine,
            groups,
            DEFAULT_CONFIG,
            NOW_MS,
            sort_unstarted=lambda a, b: a.total_count - b.total_count,
        )
        assert by_size.expand_index == 2
        assert by_size.recommended == {0, 2}

    def test_sort_ties_fall_back_to_index(self, engine, storage):
        groups = [_group(0, 2), _group(3, 4), _group(1, 4)]
        _mastered(storage, ["g0-0", "g0-1"])
        result = compute_recommendations(
            engine,
            groups,
            DEFAULT_CONFIG,
            NOW_MS,
            sort_unstarted=lambda a, b: a.total_count - b.total_count,
        )
        assert result.expand_index == 1


class TestConsolidationRanking:
    def test_groups_at_or_above_median_recommended(self, engine, storage):
        groups = [_group(0, 4), _group(1, 4), _group(2, 4)]
        _due(storage, [f"g0-{n}" for n in range(4)])
        _mastered(storage, ["g1-0", "g1-1"])
        _due(storage, ["g1-2", "g1-3"])
        _mastered(storage, [f"g2-{n}" for n in range(4)])

        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidate_indices == [0, 1]
        assert result.consolidate_due_count == 6
        assert result.recommended == {0, 1}
        assert result.consolidation_ratio == pytest.approx(0.5)

    def test_equal_work_groups_ordered_by_index(self, engine, storage):
        groups = [_group(1, 2), _group(0, 2)]
        _due(storage, ["g0-0", "g1-0"])
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidate_indices == [0, 1]

    def test_unseen_items_in_started_group_count_as_work(self, engine, storage):
        groups = [_group(0, 4), _group(1, 4)]
        _mastered(storage, ["g0-0", "g0-1", "g1-0", "g1-1", "g1-2", "g1-3"])
        result = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert result.consolidate_indices == [0]
        assert result.consolidate_due_count == 2

    def test_five_group_progression(self, engine, storage, five_groups):
        _mastered(storage, ["g0-0", "g0-1", "g0-2"])
        _due(storage, ["g0-3"])
        result = compute_recommendations(
            engine,
            five_groups,
            DEFAULT_CONFIG,
            NOW_MS,
            sort_unstarted=lambda a, b: a.index - b.index,
        )
        assert result.consolidation_ratio == pytest.approx(0.75)
        assert result.recommended == {0, 1}
        assert result.consolidate_indices == [0]
        assert result.expand_index == 1
        assert result.enabled is None

    def test_recommendations_follow_time(self, engine, storage):
        groups = [_group(0, 2), _group(1, 2)]
        _mastered(storage, ["g0-0", "g0-1"])
        now = compute_recommendations(engine, groups, DEFAULT_CONFIG, NOW_MS)
        assert now.expand_index == 1
        later = compute_recommendations(
            engine, groups, DEFAULT_CONFIG, NOW_MS + 48 * 3_600_000
        )
        assert later.consolidation_ratio == 0.0
        assert later.expand_index is None
