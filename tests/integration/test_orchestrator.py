"""Integration tests for the concurrent trial orchestrator."""

from __future__ import annotations

from io import StringIO

import pytest
from rich.console import Console

from rtp_sampler.config.levels import StrategyVariant
from rtp_sampler.engine.quota import TierRatios
from rtp_sampler.models import LevelSpec, RecordPool, SelectionResult
from rtp_sampler.orchestrator import LogChannel, TrialOrchestrator, TrialState
from rtp_sampler.orchestrator import trial as trial_module
from rtp_sampler.persistence import JsonFileSink, NullSink

pytestmark = pytest.mark.integration

LEVELS = [LevelSpec(4, 0.8), LevelSpec(6, 0.9), LevelSpec(200, 2.0)]


def _fixed_clock() -> int:
    return 1_700_000_000_000_000_000


def _quiet_channel() -> tuple[LogChannel, StringIO]:
    buffer = StringIO()
    return LogChannel(Console(file=buffer, width=200, color_system=None)), buffer


def _orchestrator(pool: RecordPool, sink, max_workers: int, **kwargs) -> TrialOrchestrator:
    channel, _ = _quiet_channel()
    options = {
        "per_spin_bet": 1.0,
        "target_count": 100,
        "tier_ratios": TierRatios(big=0.02, mega=0.01),
        "run_id": "run-fixed",
        "clock": _fixed_clock,
        "max_workers": max_workers,
        "log_channel": channel,
    }
    options.update(kwargs)
    return TrialOrchestrator(pool, sink, **options)


class FailingSink:
    """Sink that rejects every write for one level."""

    def __init__(self, level_id: int) -> None:
        self.level_id = level_id
        self.written: list[tuple[int, int]] = []

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        if level_id == self.level_id:
            raise OSError("disk full")
        self.written.append((level_id, repetition))


class TestTrialOrchestrator:
    """Test batch execution, isolation and reproducibility."""

    def test_all_trials_succeed(self, synthetic_pool: RecordPool, collecting_sink) -> None:
        orchestrator = _orchestrator(synthetic_pool, collecting_sink, max_workers=4)
        report = orchestrator.run(LEVELS, repetitions=3)

        assert report.ok
        assert report.succeeded == 9
        assert report.run_id == "run-fixed"
        assert report.started_at_ns == _fixed_clock()
        assert sorted(collecting_sink.results) == [
            (level.level_id, rep) for level in LEVELS for rep in (1, 2, 3)
        ]
        for result in collecting_sink.results.values():
            assert len(result.records) == 100
        assert all(state is TrialState.SUCCEEDED for state in orchestrator.states.values())

    def test_concurrency_does_not_change_results(
        self, synthetic_pool: RecordPool, collecting_sink
    ) -> None:
        sequential_sink = type(collecting_sink)()
        _orchestrator(synthetic_pool, collecting_sink, max_workers=4).run(LEVELS, 4)
        _orchestrator(synthetic_pool, sequential_sink, max_workers=1).run(LEVELS, 4)
        assert collecting_sink.ids() == sequential_sink.ids()
        assert len(collecting_sink.ids()) == 12

    def test_per_level_repetitions(self, synthetic_pool: RecordPool, collecting_sink) -> None:
        orchestrator = _orchestrator(synthetic_pool, collecting_sink, max_workers=2)
        report = orchestrator.run(LEVELS, repetitions={4: 2, 200: 1})
        assert len(report.outcomes) == 3
        assert sorted(collecting_sink.results) == [(4, 1), (4, 2), (200, 1)]

    def test_fixed_variant_and_count_per_variant(
        self, synthetic_pool: RecordPool, collecting_sink
    ) -> None:
        orchestrator = _orchestrator(
            synthetic_pool,
            collecting_sink,
            max_workers=2,
            target_count=lambda variant: 50 if variant is StrategyVariant.BASELINE else 80,
        )
        plan = orchestrator.plan(LEVELS[0], StrategyVariant.BASELINE)
        assert plan.target_count == 50
        assert plan.total_bet == 50.0
        assert plan.band.name == "strict"
        report = orchestrator.run(LEVELS[:2], 1, StrategyVariant.BASELINE)
        assert report.ok
        assert {r.variant for r in collecting_sink.results.values()} == {"baseline"}

    def test_bet_multiplier_scales_stake(self, synthetic_pool: RecordPool, collecting_sink) -> None:
        orchestrator = _orchestrator(
            synthetic_pool, collecting_sink, max_workers=1, per_spin_bet=0.5, bet_multiplier=2.0
        )
        assert orchestrator.plan(LEVELS[0]).total_bet == 100.0

    def test_failing_trials_are_isolated(self, synthetic_pool: RecordPool) -> None:
        sink = FailingSink(level_id=6)
        orchestrator = _orchestrator(synthetic_pool, sink, max_workers=4)
        report = orchestrator.run(LEVELS, repetitions=2)

        assert not report.ok
        assert report.failed == 2
        assert report.failures["failures_by_level"] == {6: 2}
        assert all("SinkError" in line for line in report.failures["details"])
        assert sorted(sink.written) == [(4, 1), (4, 2), (200, 1), (200, 2)]
        states = orchestrator.states
        assert states[(6, 1)] is TrialState.FAILED
        assert states[(4, 1)] is TrialState.SUCCEEDED

    def test_failure_detail_cap(self, coarse_pool: RecordPool) -> None:
        orchestrator = _orchestrator(
            coarse_pool, NullSink(), max_workers=4, target_count=5, detail_limit=10
        )
        report = orchestrator.run([LevelSpec(4, 0.8)], repetitions=12)
        assert report.failed == 12
        assert report.failures["total_failures"] == 12
        assert len(report.failures["details"]) == 10
        assert report.failures["omitted"] == 2
        assert all("DeviationError" in line for line in report.failures["details"])

    def test_trial_logs_do_not_interleave(self, synthetic_pool: RecordPool, collecting_sink) -> None:
        channel, buffer = _quiet_channel()
        orchestrator = _orchestrator(
            synthetic_pool, collecting_sink, max_workers=4, log_channel=channel
        )
        orchestrator.run(LEVELS[:1], repetitions=6)

        headers = [
            line.split(" ")[1:4]
            for line in buffer.getvalue().splitlines()
            if " level 4 #" in line
        ]
        seen: list[str] = []
        for header in headers:
            key = " ".join(header)
            if not seen or seen[-1] != key:
                assert key not in seen
                seen.append(key)
        assert len(seen) == 6


    def test_unplannable_level_fails_its_trials(
        self, synthetic_pool: RecordPool, collecting_sink
    ) -> None:
        counts = {StrategyVariant.DYNAMIC_RATIO: 100, StrategyVariant.BASELINE: 100}
        orchestrator = _orchestrator(
            synthetic_pool, collecting_sink, max_workers=2, target_count=lambda v: counts[v]
        )
        report = orchestrator.run([LevelSpec(4, 0.8), LevelSpec(200, 2.0)], repetitions=2)

        assert report.succeeded == 2
        assert report.failed == 2
        assert report.failures["failures_by_level"] == {200: 2}
        assert all("KeyError" in line for line in report.failures["details"])
        assert sorted(collecting_sink.results) == [(4, 1), (4, 2)]
        assert orchestrator.states[(200, 1)] is TrialState.FAILED
        assert orchestrator.states[(200, 2)] is TrialState.FAILED

    def test_short_selection_is_rejected(
        self, synthetic_pool: RecordPool, collecting_sink, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_select = trial_module.select

        def drop_one(variant, pool, count, target, *args):
            result = real_select(variant, pool, count, target, *args)
            if target.target_ratio != 0.9:
                return result
            return SelectionResult(
                records=result.records[:-1],
                total_bet=result.total_bet,
                tier_counts=result.tier_counts,
                variant=result.variant,
            )

        monkeypatch.setattr(trial_module, "select", drop_one)
        report = _orchestrator(synthetic_pool, collecting_sink, max_workers=4).run(LEVELS, 2)

        assert report.failed == 2
        assert report.failures["failures_by_level"] == {6: 2}
        assert all("QuantityMismatchError" in line for line in report.failures["details"])
        assert sorted(collecting_sink.results) == [(4, 1), (4, 2), (200, 1), (200, 2)]

    def test_unexpected_error_is_contained(
        self, synthetic_pool: RecordPool, collecting_sink, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_select = trial_module.select

        def explode(variant, pool, count, target, *args):
            if target.target_ratio == 0.9:
                raise RuntimeError("index corrupted")
            return real_select(variant, pool, count, target, *args)

        monkeypatch.setattr(trial_module, "select", explode)
        orchestrator = _orchestrator(synthetic_pool, collecting_sink, max_workers=4)
        report = orchestrator.run(LEVELS, 2)

        assert report.failed == 2
        assert report.succeeded == 4
        assert report.failures["failures_by_level"] == {6: 2}
        assert all("RuntimeError: index corrupted" in line for line in report.failures["details"])
        assert [o.error for o in report.outcomes if o.level_id == 6] == [
            "unexpected RuntimeError: index corrupted"
        ] * 2
        assert orchestrator.states[(6, 2)] is TrialState.FAILED

    def test_states_reset_between_runs(
        self, synthetic_pool: RecordPool, collecting_sink
    ) -> None:
        orchestrator = _orchestrator(synthetic_pool, collecting_sink, max_workers=2)
        orchestrator.run(LEVELS[:1], repetitions=2)
        orchestrator.run(LEVELS[2:], repetitions=1)
        assert set(orchestrator.states) == {(200, 1)}


class TestJsonOutput:
    def test_files_written_per_trial(self, synthetic_pool: RecordPool, tmp_path) -> None:
        sink = JsonFileSink(tmp_path, 101)
        orchestrator = _orchestrator(synthetic_pool, sink, max_workers=3)
        report = orchestrator.run(LEVELS[:1], repetitions=3)
        assert report.ok
        assert sorted(p.name for p in sink.directory.iterdir()) == [
            "GameResultData_4_1.json",
            "GameResultData_4_2.json",
            "GameResultData_4_3.json",
        ]
