"""Unit tests for the selection phases."""

from __future__ import annotations

import pytest

from rtp_sampler.engine import phases
from rtp_sampler.engine.builder import SelectionBuilder
from rtp_sampler.engine.seeds import make_rng
from rtp_sampler.errors import PoolExhaustionError
from rtp_sampler.models import PrizeTier, Quota, RecordPool, SelectionTarget
from rtp_sampler.orchestrator.log_channel import TrialLog


def _builder(count: int, ratio: float, slack: float = 0.005, big_cap: int = 0) -> SelectionBuilder:
    target = SelectionTarget(total_bet=float(count), target_ratio=ratio, upper_slack=slack)
    quota = Quota(target_count=count, big_cap=big_cap, mega_cap=0, super_mega_cap=0)
    return SelectionBuilder(count, target, quota)


class TestAdmissionProbability:
    """Test the clamped profit-pool probability."""

    @pytest.mark.parametrize(
        ("remaining", "slots", "expected"),
        [(50.0, 100, 0.5), (500.0, 100, 0.8), (1.0, 100, 0.2), (10.0, 0, 0.2)],
    )
    def test_clamp(self, remaining: float, slots: int, expected: float) -> None:
        assert phases.admission_probability(remaining, 1.0, slots) == pytest.approx(expected)


class TestPrimaryFill:
    def test_limit(self, synthetic_pool: RecordPool) -> None:
        builder = _builder(200, 0.9)
        admitted = phases.primary_fill(builder, synthetic_pool.win, make_rng(1), limit=10)
        assert admitted == 10
        assert builder.count == 10

    def test_stop_in_band(self, synthetic_pool: RecordPool) -> None:
        builder = _builder(200, 0.9)
        phases.primary_fill(builder, synthetic_pool.win, make_rng(2), stop_in_band=True)
        assert builder.in_band

    def test_unshuffled_keeps_order(self, make_record) -> None:
        records = [make_record(i, 1.0) for i in range(1, 6)]
        builder = _builder(5, 10.0)
        phases.primary_fill(builder, records, make_rng(3), limit=3, shuffle=False)
        assert [r.id for r in builder.records] == [1, 2, 3]


class TestGapPhases:
    def test_close_gap_reaches_target(self, synthetic_pool: RecordPool) -> None:
        builder = _builder(200, 0.9)
        phases.close_gap(builder, synthetic_pool, make_rng(4))
        assert builder.gap <= 0
        assert builder.headroom >= 0

    def test_match_single(self, make_record) -> None:
        pool = RecordPool.from_records([make_record(1, 4.01), make_record(2, 3.0)])
        builder = _builder(5, 0.8)
        assert phases.match_single(builder, pool.lookup, 0.005)
        assert [r.id for r in builder.records] == [1]

    def test_top_up_by_amount(self, make_record) -> None:
        pool = RecordPool.from_records(
            [
                make_record(1, 0.5),
                make_record(2, 1.0, total_bet=0.5),
                make_record(3, 2.0),
                make_record(4, 3.0),
            ]
        )
        builder = _builder(5, 0.8)
        phases.top_up_by_amount(builder, pool, win_top_ratio=0.2)
        # one largest win fits, then the profit record nearest the gap
        assert [r.id for r in builder.records] == [4, 2]
        assert builder.in_band

    def test_fill_from_candidates_is_bounded(self, make_record) -> None:
        pool = RecordPool.from_records([make_record(i, 0.5) for i in range(1, 20)])
        builder = _builder(5, 0.8)
        phases.fill_from_candidates(builder, pool.lookup, limit=2, max_passes=1)
        assert builder.count == 2


class TestPadding:
    def test_pads_unique_first(self, make_record) -> None:
        no_win = [make_record(i, 0.0) for i in range(1, 4)]
        builder = _builder(5, 0.8)
        phases.pad_with_no_win(builder, no_win, make_rng(5))
        assert builder.is_full
        assert len({r.id for r in builder.records[:3]}) == 3
        assert builder.padding_repeats == 2

    def test_empty_pool_raises(self) -> None:
        builder = _builder(5, 0.8)
        with pytest.raises(PoolExhaustionError) as exc_info:
            phases.pad_with_no_win(builder, [], make_rng(6))
        assert exc_info.value.needed == 5


class TestCorrection:
    """Test the bounded swap-based corrections."""

    def test_downward_swaps_in_band_record(self, make_record) -> None:
        pool = RecordPool.from_records(
            [make_record(1, 3.0), make_record(2, 2.0), make_record(3, 1.0), make_record(9, 0.0)]
        )
        builder = _builder(3, 1.0)
        builder.try_admit(make_record(1, 3.0), bounded=False)
        builder.try_admit(make_record(2, 2.0), bounded=False)
        builder.pad(make_record(9, 0.0))
        swaps = phases.correct_downward(builder, pool, max_swaps=10)
        assert swaps == 1
        assert builder.in_band
        assert sorted(r.id for r in builder.records) == [2, 3, 9]

    def test_downward_respects_quota(self, make_record) -> None:
        big = make_record(3, 2.0, tier=PrizeTier.BIG)
        pool = RecordPool.from_records([make_record(1, 3.0), big, make_record(9, 0.0)])
        builder = _builder(2, 1.0, big_cap=0)
        builder.try_admit(make_record(1, 3.0), bounded=False)
        builder.pad(make_record(9, 0.0))
        log = TrialLog(6, 1)
        phases.correct_downward(builder, pool, max_swaps=10, log=log)
        assert all(r.prize_tier is not PrizeTier.BIG for r in builder.records)
        assert builder.headroom < 0
        assert log.lines[-1][0] == "warning"

    def test_downward_stops_at_swap_limit(self, make_record) -> None:
        pool = RecordPool.from_records([make_record(i, 3.0 - i * 0.1) for i in range(1, 10)])
        builder = _builder(2, 0.5)
        builder.try_admit(make_record(100, 5.0), bounded=False)
        builder.try_admit(make_record(101, 5.0), bounded=False)
        assert phases.correct_downward(builder, pool, max_swaps=1) == 1
        assert builder.correction_swaps == 1

    def test_upward_replaces_zero(self, make_record) -> None:
        pool = RecordPool.from_records([make_record(1, 4.0), make_record(2, 9.0)])
        builder = _builder(5, 0.8)
        for i in range(5):
            builder.pad(make_record(50 + i, 0.0))
        swaps = phases.correct_upward(builder, pool, max_swaps=10)
        assert swaps == 1
        assert builder.in_band

    def test_upward_gives_up_without_candidates(self, make_record) -> None:
        pool = RecordPool.from_records([make_record(1, 9.0)])
        builder = _builder(5, 0.8)
        for i in range(5):
            builder.pad(make_record(50 + i, 0.0))
        log = TrialLog(4, 2)
        assert phases.correct_upward(builder, pool, max_swaps=10, log=log) == 0
        assert "below the target" in log.lines[-1][1]
