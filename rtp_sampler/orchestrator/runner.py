"""Concurrent trial orchestrator.

Trials of one level run on a shared ``ThreadPoolExecutor`` whose worker
count bounds parallelism (CPU count by default). The orchestrator joins all
trials of a level before reporting it and moving on. The record pools are
read-only, so workers share them without locking; the log channel and the
failure aggregator are the only shared writable objects.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from rtp_sampler.config.levels import PolicyBandTable, StrategyVariant, classify_level
from rtp_sampler.engine.quota import TierRatios
from rtp_sampler.engine.seeds import derive_trial_seed, generate_run_id
from rtp_sampler.engine.strategies import SelectionParams
from rtp_sampler.engine.validator import RtpValidator
from rtp_sampler.errors import TrialError
from rtp_sampler.models import LevelSpec, RecordPool
from rtp_sampler.orchestrator.failures import FailureAggregator, FailureSummary
from rtp_sampler.orchestrator.log_channel import LogChannel
from rtp_sampler.orchestrator.trial import (
    TrialContext,
    TrialOutcome,
    TrialPlan,
    TrialState,
    create_context,
    run_trial,
)
from rtp_sampler.persistence.protocols import OutputSink

VariantSelector = StrategyVariant | Callable[[LevelSpec], StrategyVariant]
Repetitions = int | Mapping[int, int]
TargetCount = int | Callable[[StrategyVariant], int]


@dataclass(frozen=True)
class BatchReport:
    """Result of one orchestrator run."""

    run_id: str
    started_at_ns: int
    outcomes: list[TrialOutcome]
    failures: FailureSummary
    duration_s: float

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.state == TrialState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.state == TrialState.FAILED)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class TrialOrchestrator:
    """Runs every (level, repetition) trial of a batch.

    Args:
        pool: Record pools shared by all trials.
        sink: Receives each validated selection. Must accept results in
            any completion order.
        per_spin_bet: Stake of one spin (``cs * ml * bl``).
        target_count: Records per trial, fixed or per strategy variant.
        tier_ratios: Rare-tier shares for quota calculation.
        bet_multiplier: Stake multiplier (purchase mode).
        params: Strategy tuning.
        bands: Per-level policy bands.
        run_id: Stable identifier mixed into every trial seed.
        clock: Nanosecond clock read once at the start of each run.
        max_workers: Parallel trial bound. Defaults to CPU count.
        log_channel: Serialized console channel.
        detail_limit: Maximum failure detail lines in the summary.

    Example:
        >>> orchestrator = TrialOrchestrator(pool, sink, per_spin_bet=1.0, target_count=100)
        >>> report = orchestrator.run(levels, repetitions=3)
        >>> report.failures["total_failures"]
        0
    """

    def __init__(
        self,
        pool: RecordPool,
        sink: OutputSink,
        *,
        per_spin_bet: float,
        target_count: TargetCount,
        tier_ratios: TierRatios | None = None,
        bet_multiplier: float = 1.0,
        params: SelectionParams | None = None,
        bands: PolicyBandTable | None = None,
        run_id: str | None = None,
        clock: Callable[[], int] = time.time_ns,
        max_workers: int | None = None,
        log_channel: LogChannel | None = None,
        detail_limit: int = 10,
    ) -> None:
        self.pool = pool
        self.sink = sink
        self.per_spin_bet = per_spin_bet
        self.target_count = target_count
        self.tier_ratios = tier_ratios or TierRatios()
        self.bet_multiplier = bet_multiplier
        self.params = params or SelectionParams()
        self.bands = bands or PolicyBandTable.default()
        self.validator = RtpValidator(self.bands)
        self.run_id = run_id or generate_run_id("rtp")
        self.clock = clock
        self.max_workers = max_workers or os.cpu_count() or 1
        self.channel = log_channel or LogChannel()
        self.detail_limit = detail_limit
        self._states: dict[tuple[int, int], TrialState] = {}
        self._states_lock = threading.Lock()

    @property
    def states(self) -> dict[tuple[int, int], TrialState]:
        """Snapshot of every trial's state keyed by ``(level_id, repetition)``."""
        with self._states_lock:
            return dict(self._states)

    def _set_state(self, key: tuple[int, int], state: TrialState) -> None:
        with self._states_lock:
            self._states[key] = state

    def plan(self, level: LevelSpec, variant: VariantSelector = classify_level) -> TrialPlan:
        """Resolve variant, record count, band and stake for a level."""
        resolved = variant if isinstance(variant, StrategyVariant) else variant(level)
        count = (
            self.target_count
            if isinstance(self.target_count, int)
            else self.target_count(resolved)
        )
        return TrialPlan(
            level=level,
            variant=resolved,
            target_count=count,
            band=self.bands.band_for(level.level_id),
            total_bet=self.per_spin_bet * self.bet_multiplier * count,
        )

    def run(
        self,
        levels: Sequence[LevelSpec],
        repetitions: Repetitions,
        variant: VariantSelector = classify_level,
    ) -> BatchReport:
        """Run all trials and return the aggregated report.

        Args:
            levels: Levels to generate, processed in order.
            repetitions: Trials per level, fixed or keyed by level id.
            variant: Fixed strategy variant or a level classifier.

        Returns:
            BatchReport with every trial outcome and the failure summary.
        """
        started_at_ns = self.clock()
        wall_start = time.perf_counter()
        aggregator = FailureAggregator()
        outcomes: list[TrialOutcome] = []
        with self._states_lock:
            self._states.clear()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for level in levels:
                count = (
                    repetitions
                    if isinstance(repetitions, int)
                    else repetitions.get(level.level_id, 0)
                )
                if count <= 0:
                    continue
                try:
                    plan = self.plan(level, variant)
                except MemoryError:
                    raise
                except Exception as e:
                    outcomes.extend(
                        self._fail_level(level, count, started_at_ns, aggregator, e)
                    )
                    continue
                self.channel.info(
                    f"Level {level.level_id} (RTP {level.target_ratio}): "
                    f"{count} x {plan.target_count} records, {plan.variant.value}, "
                    f"{plan.band.name} band"
                )
                for repetition in range(1, count + 1):
                    self._set_state((level.level_id, repetition), TrialState.SCHEDULED)
                futures = {
                    executor.submit(
                        self._run_one, plan, repetition, started_at_ns, aggregator
                    ): repetition
                    for repetition in range(1, count + 1)
                }
                level_outcomes = [future.result() for future in as_completed(futures)]
                level_outcomes.sort(key=lambda o: o.repetition)
                outcomes.extend(level_outcomes)

                failed = sum(1 for o in level_outcomes if o.state == TrialState.FAILED)
                if failed:
                    self.channel.warning(
                        f"Level {level.level_id}: {count - failed}/{count} trials succeeded"
                    )
                else:
                    self.channel.success(f"Level {level.level_id}: all {count} trials succeeded")

        return BatchReport(
            run_id=self.run_id,
            started_at_ns=started_at_ns,
            outcomes=outcomes,
            failures=aggregator.summary(len(outcomes), self.detail_limit),
            duration_s=time.perf_counter() - wall_start,
        )

    def _run_one(
        self,
        plan: TrialPlan,
        repetition: int,
        started_at_ns: int,
        aggregator: FailureAggregator,
    ) -> TrialOutcome:
        key = (plan.level.level_id, repetition)
        self._set_state(key, TrialState.RUNNING)
        ctx = create_context(plan, repetition, started_at_ns, self.run_id)
        start = time.perf_counter()
        try:
            result = run_trial(
                ctx,
                plan,
                self.pool,
                self.tier_ratios,
                self.params,
                self.validator,
                self.sink,
            )
        except MemoryError:
            raise
        except TrialError as e:
            return self._fail(ctx, key, start, aggregator, e, str(e))
        except Exception as e:
            return self._fail(
                ctx, key, start, aggregator, e, f"unexpected {type(e).__name__}: {e}"
            )
        else:
            ctx.log.success(f"RTP {result.achieved_ratio:.6f} (target {plan.level.target_ratio})")
            self._set_state(key, TrialState.SUCCEEDED)
            return TrialOutcome(
                level_id=key[0],
                repetition=repetition,
                state=TrialState.SUCCEEDED,
                seed=ctx.seed,
                duration_s=time.perf_counter() - start,
                achieved_ratio=result.achieved_ratio,
            )
        finally:
            self.channel.publish(ctx.log)

    def _fail_level(
        self,
        level: LevelSpec,
        count: int,
        started_at_ns: int,
        aggregator: FailureAggregator,
        error: Exception,
    ) -> list[TrialOutcome]:
        """Mark every repetition of a level that could not be planned as failed."""
        message = f"planning failed: {type(error).__name__}: {error}"
        self.channel.error(f"Level {level.level_id}: {message}")
        outcomes: list[TrialOutcome] = []
        for repetition in range(1, count + 1):
            aggregator.record(level.level_id, repetition, error)
            self._set_state((level.level_id, repetition), TrialState.FAILED)
            outcomes.append(
                TrialOutcome(
                    level_id=level.level_id,
                    repetition=repetition,
                    state=TrialState.FAILED,
                    seed=derive_trial_seed(
                        started_at_ns, self.run_id, repetition, level.level_id
                    ),
                    duration_s=0.0,
                    error=message,
                )
            )
        return outcomes

    def _fail(
        self,
        ctx: TrialContext,
        key: tuple[int, int],
        start: float,
        aggregator: FailureAggregator,
        error: Exception,
        message: str,
    ) -> TrialOutcome:
        aggregator.record(key[0], key[1], error)
        ctx.log.error(message)
        self._set_state(key, TrialState.FAILED)
        return TrialOutcome(
            level_id=key[0],
            repetition=key[1],
            state=TrialState.FAILED,
            seed=ctx.seed,
            duration_s=time.perf_counter() - start,
            error=message,
        )
