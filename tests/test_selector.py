import logging
import math
import random
from collections import Counter
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from fretcore.config import DEFAULT_CONFIG
from fretcore.models import ItemStats
from fretcore.selector import AdaptiveSelector, compute_weight, select_weighted
from fretcore.storage import MemoryStorage

from helpers import NOW_MS, make_stats


class FailingStorage(MemoryStorage):
    """Storage whose reads and/or writes always raise."""

    def __init__(self, fail_reads=False, fail_writes=False):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    def get_stats(self, item_id):
        if self.fail_reads:
            raise OSError("disk unavailable")
        return super().get_stats(item_id)

    def save_stats(self, item_id, stats):
        if self.fail_writes:
            raise OSError("disk full")
        super().save_stats(item_id, stats)


class TestComputeWeight:
    def test_unseen_items_get_boost(self):
        assert compute_weight(None, DEFAULT_CONFIG, NOW_MS) == 3.0
        zero = ItemStats(ewma=0, count=0)
        assert compute_weight(zero, DEFAULT_CONFIG, NOW_MS) == 3.0

    def test_fresh_fast_item_weighs_one(self):
        stats = make_stats(ewma=800, stability=4.0, hours_since_correct=0)
        assert compute_weight(stats, DEFAULT_CONFIG, NOW_MS) == pytest.approx(1.0)

    def test_slow_item_weighs_more(self):
        fast = make_stats(ewma=1000)
        slow = make_stats(ewma=4000)
        assert compute_weight(slow, DEFAULT_CONFIG, NOW_MS) > compute_weight(
            fast, DEFAULT_CONFIG, NOW_MS
        )

    def test_decayed_item_weighs_more(self):
        fresh = make_stats(hours_since_correct=0)
        stale = make_stats(hours_since_correct=4.0)
        assert compute_weight(stale, DEFAULT_CONFIG, NOW_MS) == pytest.approx(
            1.5 * compute_weight(fresh, DEFAULT_CONFIG, NOW_MS)
        )

    def test_never_correct_item_gets_full_recall_factor(self):
        stats = ItemStats(ewma=2000, count=2, last_seen_at=NOW_MS)
        assert compute_weight(stats, DEFAULT_CONFIG, NOW_MS) == pytest.approx(4.0)


class TestSelectWeighted:
    def test_picks_by_cumulative_weight(self):
        items = ["a", "b", "c"]
        weights = [1.0, 2.0, 1.0]
        assert select_weighted(items, weights, 0.0) == "a"
        assert select_weighted(items, weights, 0.3) == "b"
        assert select_weighted(items, weights, 0.74) == "b"
        assert select_weighted(items, weights, 0.76) == "c"

    def test_zero_weight_never_chosen(self):
        items = ["a", "b", "c"]
        weights = [0.0, 1.0, 0.0]
        for r in (0.0, 0.25, 0.5, 0.999999):
            assert select_weighted(items, weights, r) == "b"

    def test_zero_total_is_uniform(self):
        items = ["a", "b", "c", "d"]
        assert select_weighted(items, [0, 0, 0, 0], 0.0) == "a"
        assert select_weighted(items, [0, 0, 0, 0], 0.6) == "c"
        assert select_weighted(items, [0, 0, 0, 0], 0.999) == "d"


class TestSelectNext:
    def test_empty_candidates_rejected(self, selector):
        with pytest.raises(ValueError, match="enabled_items cannot be empty"):
            selector.select_next([])

    def test_single_candidate_returned_even_if_last(self, selector):
        assert selector.select_next(["only"]) == "only"
        assert selector.select_next(["only"]) == "only"
        assert selector.last_selected == "only"

    def test_never_repeats_last_selected(self, selector):
        items = ["a", "b", "c"]
        previous = selector.select_next(items)
        for _ in range(200):
            chosen = selector.select_next(items)
            assert chosen != previous
            previous = chosen

    def test_unseen_items_roughly_uniform(self, storage, clock):
        items = [f"item{i}" for i in range(4)]
        sel = AdaptiveSelector(storage, random_fn=random.Random(42).random, clock=clock)
        counts = Counter(sel.select_next(items) for _ in range(4000))
        assert set(counts) == set(items)
        for item in items:
            assert 800 < counts[item] < 1200

    def test_slow_item_selected_more_often(self, storage, clock):
        storage.save_stats("fast", make_stats(ewma=1000))
        storage.save_stats("slow", make_stats(ewma=5000))
        storage.save_stats("other", make_stats(ewma=1000))
        sel = AdaptiveSelector(storage, random_fn=random.Random(7).random, clock=clock)
        counts = Counter(sel.select_next(["fast", "slow", "other"]) for _ in range(3000))
        assert counts["slow"] > counts["fast"]
        assert counts["slow"] > counts["other"]

    def test_zero_total_falls_back_to_non_last(self, storage, clock):
        cfg = DEFAULT_CONFIG
        sel = AdaptiveSelector(storage, config=cfg, random_fn=lambda: 0.0, clock=clock)
        sel.get_weight = MagicMock(return_value=0.0)
        first = sel.select_next(["a", "b"])
        assert first == "a"
        assert sel.select_next(["a", "b"]) == "b"

    def test_deterministic_with_injected_random(self, storage, clock):
        seq_a = AdaptiveSelector(storage, random_fn=random.Random(99).random, clock=clock)
        seq_b = AdaptiveSelector(MemoryStorage(), random_fn=random.Random(99).random, clock=clock)
        items = ["a", "b", "c", "d"]
        assert [seq_a.select_next(items) for _ in range(20)] == [
            seq_b.select_next(items) for _ in range(20)
        ]


class TestRecordResponse:
    def test_first_response_initializes_record(self, selector, storage, clock):
        stats = selector.record_response("a", 1200, correct=True)
        assert stats.ewma == 1200
        assert stats.count == 1
        assert stats.stability == 4.0
        assert stats.last_correct_at == clock.now_ms
        assert stats.last_seen_at == clock.now_ms
        assert storage.get_stats("a") == stats

    def test_ewma_updates(self, selector):
        selector.record_response("a", 1000)
        stats = selector.record_response("a", 2000)
        assert stats.ewma == pytest.approx(1300)
        assert stats.count == 2

    def test_response_time_clamped(self, selector):
        stats = selector.record_response("a", 60000)
        assert stats.ewma == 9000

    def test_wrong_answer_increments_count_without_memory(self, selector):
        stats = selector.record_response("a", 2500, correct=False)
        assert stats.count == 1
        assert stats.stability is None
        assert stats.last_correct_at is None
        assert stats.ewma == 2500

    def test_wrong_after_correct_decays_stability(self, selector, clock):
        selector.record_response("a", 2000)
        clock.advance_hours(1)
        grown = selector.record_response("a", 2000)
        clock.advance_hours(1)
        decayed = selector.record_response("a", 2000, correct=False)
        assert decayed.stability < grown.stability
        assert decayed.last_correct_at == grown.last_correct_at

    def test_explicit_now_overrides_clock(self, selector):
        stats = selector.record_response("a", 1000, now_ms=123.0)
        assert stats.last_seen_at == 123.0

    @pytest.mark.parametrize("bad", [-1, math.nan, math.inf])
    def test_invalid_time_rejected(self, selector, storage, bad):
        with pytest.raises(ValueError, match="Invalid response time"):
            selector.record_response("a", bad)
        assert storage.get_stats("a") is None

    def test_zero_time_accepted(self, selector):
        assert selector.record_response("a", 0).ewma == 0

    def test_round_trip_through_storage(self, storage, clock):
        first = AdaptiveSelector(storage, clock=clock)
        first.record_response("a", 1500)
        second = AdaptiveSelector(storage, clock=clock)
        assert second.get_stats("a") == first.get_stats("a")


class TestStorageFailures:
    def test_read_failure_treated_as_unseen(self, clock, caplog):
        sel = AdaptiveSelector(FailingStorage(fail_reads=True), clock=clock)
        with caplog.at_level(logging.WARNING):
            assert sel.get_stats("a") is None
            assert sel.get_weight("a") == DEFAULT_CONFIG.unseen_boost
        assert "treating as unseen" in caplog.text

    def test_write_failure_kept_in_memory(self, clock, caplog):
        failing = FailingStorage(fail_writes=True)
        sel = AdaptiveSelector(failing, clock=clock)
        with caplog.at_level(logging.WARNING):
            first = sel.record_response("a", 1000)
        assert "keeping in memory" in caplog.text
        assert sel.get_stats("a") == first
        second = sel.record_response("a", 2000)
        assert second.count == 2

    def test_has_unsaved_tracks_failed_writes(self, clock):
        failing = FailingStorage(fail_writes=True)
        sel = AdaptiveSelector(failing, clock=clock)
        assert not sel.has_unsaved("a")
        sel.record_response("a", 1000)
        assert sel.has_unsaved("a")
        assert not sel.has_unsaved("b")

        failing.fail_writes = False
        sel.record_response("a", 1000)
        assert not sel.has_unsaved("a")
        assert failing.get_stats("a").count == 2

    def test_select_next_survives_failing_storage(self, clock):
        sel = AdaptiveSelector(
            FailingStorage(fail_reads=True, fail_writes=True), clock=clock
        )
        assert sel.select_next(["a", "b"]) in {"a", "b"}
        sel.record_response("a", 1000)


class TestConfigUpdates:
    def test_update_config_with_patch(self, selector):
        cfg = selector.update_config({"unseen_boost": 10.0})
        assert cfg.unseen_boost == 10.0
        assert selector.get_config() is cfg
        assert selector.get_weight("new") == 10.0

    def test_update_config_with_instance(self, selector):
        new_cfg = DEFAULT_CONFIG.merged({"min_time": 500})
        selector.update_config(new_cfg)
        assert selector.get_config() == new_cfg

    def test_invalid_patch_rejected(self, selector):
        with pytest.raises(ValidationError):
            selector.update_config({"ewma_alpha": 2})
        assert selector.get_config() == DEFAULT_CONFIG

    def test_update_does_not_rewrite_stats(self, selector, storage):
        before = selector.record_response("a", 1000)
        selector.update_config({"min_time": 500})
        assert storage.get_stats("a") == before

    def test_response_count_scales_thresholds(self, storage, clock):
        sel = AdaptiveSelector(
            storage, clock=clock, response_count_fn=lambda item_id: 3
        )
        stats = sel.record_response("chord", 40000)
        assert stats.ewma == 27000
        storage.save_stats("chord", make_stats(ewma=6000))
        assert sel.get_automaticity("chord") == pytest.approx(1.0)


class TestQueries:
    def test_recall_and_automaticity_unseen(self, selector):
        assert selector.get_recall("a") == 0.0
        assert selector.get_automaticity("a") == 0.0

    def test_recall_decays_with_clock(self, selector, clock):
        selector.record_response("a", 1000)
        assert selector.get_recall("a") == pytest.approx(1.0)
        clock.advance_hours(4)
        assert selector.get_recall("a") == pytest.approx(0.5)
        assert selector.is_mastered("a")
        clock.advance_hours(1)
        assert not selector.is_mastered("a")

    def test_automaticity_combines_recall_and_speed(self, selector, storage):
        storage.save_stats("a", make_stats(ewma=5000, stability=4.0, hours_since_correct=4.0))
        assert selector.get_automaticity("a", NOW_MS) == pytest.approx(0.25)

    def test_check_all_mastered(self, selector, storage):
        storage.save_stats("a", make_stats(hours_since_correct=0))
        storage.save_stats("b", make_stats(hours_since_correct=1))
        assert selector.check_all_mastered(["a", "b"])
        assert not selector.check_all_mastered(["a", "b", "unseen"])
        assert not selector.check_all_mastered([])

    def test_check_all_automatic(self, selector, storage):
        storage.save_stats("a", make_stats(ewma=1500))
        storage.save_stats("b", make_stats(ewma=5000))
        assert selector.check_all_automatic(["a"])
        assert not selector.check_all_automatic(["a", "b"])

    def test_check_needs_review(self, selector, storage):
        storage.save_stats("a", make_stats(ewma=1500, count=5, hours_since_correct=1))
        storage.save_stats("b", make_stats(ewma=1500, count=5, hours_since_correct=10))
        assert selector.check_needs_review(["a", "b"])
        assert not selector.check_needs_review(["a"])

    def test_check_needs_review_requires_history(self, selector, storage):
        storage.save_stats("a", make_stats(ewma=1500, count=1, hours_since_correct=10))
        assert not selector.check_needs_review(["a"])
        storage.save_stats("b", make_stats(ewma=5000, count=5, hours_since_correct=10))
        assert not selector.check_needs_review(["b"])
        assert not selector.check_needs_review(["unseen"])


class TestScenarios:
    def test_two_unseen_candidates_split_evenly(self, storage, clock):
        sel = AdaptiveSelector(
            storage,
            config=DEFAULT_CONFIG.merged({"unseen_boost": 5.0}),
            random_fn=random.Random(2024).random,
            clock=clock,
        )
        counts = Counter(sel.select_next(["x", "y"]) for _ in range(1000))
        assert 450 <= counts["x"] <= 550
        assert counts["x"] + counts["y"] == 1000

    def test_fast_correct_answers_grow_stability(self, storage, clock):
        sel = AdaptiveSelector(
            storage,
            config=DEFAULT_CONFIG.merged({"stability_growth_base": 1.3}),
            clock=clock,
        )
        stabilities = []
        for _ in range(3):
            stabilities.append(sel.record_response("a", 1000).stability)
            clock.advance_hours(1)
        assert stabilities == pytest.approx([4.0, 4.0 * 1.3 * 1.5, 4.0 * (1.3 * 1.5) ** 2])
        assert stabilities[0] < stabilities[1] < stabilities[2]
