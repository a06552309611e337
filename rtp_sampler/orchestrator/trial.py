"""One (level, repetition) unit of work.

A trial runs quota calculation, selection, cardinality check, validation
and the sink write strictly in that order. Everything it mutates lives in
its own ``TrialContext``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from rtp_sampler.config.levels import PolicyBand, StrategyVariant
from rtp_sampler.engine.quota import TierRatios, compute_quota
from rtp_sampler.engine.seeds import derive_trial_seed, make_rng
from rtp_sampler.engine.strategies import SelectionParams, select
from rtp_sampler.engine.validator import RtpValidator
from rtp_sampler.errors import QuantityMismatchError, SinkError
from rtp_sampler.models import LevelSpec, RecordPool, SelectionResult, SelectionTarget
from rtp_sampler.orchestrator.log_channel import TrialLog
from rtp_sampler.persistence.protocols import OutputSink


class TrialState(str, Enum):
    """Lifecycle of a trial. Every trial ends SUCCEEDED or FAILED."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TrialState.SUCCEEDED, TrialState.FAILED)


@dataclass(frozen=True)
class TrialPlan:
    """Settings shared by every repetition of one level."""

    level: LevelSpec
    variant: StrategyVariant
    target_count: int
    band: PolicyBand
    total_bet: float


@dataclass(frozen=True)
class TrialContext:
    """Ephemeral state owned by exactly one trial."""

    level: LevelSpec
    repetition: int
    total_bet: float
    seed: int
    rng: np.random.Generator
    log: TrialLog


@dataclass(frozen=True)
class TrialOutcome:
    level_id: int
    repetition: int
    state: TrialState
    seed: int
    duration_s: float
    achieved_ratio: float | None = None
    error: str | None = None


def create_context(
    plan: TrialPlan, repetition: int, started_at_ns: int, run_id: str
) -> TrialContext:
    """Build a trial context with its own seeded generator."""
    seed = derive_trial_seed(started_at_ns, run_id, repetition, plan.level.level_id)
    return TrialContext(
        level=plan.level,
        repetition=repetition,
        total_bet=plan.total_bet,
        seed=seed,
        rng=make_rng(seed),
        log=TrialLog(plan.level.level_id, repetition),
    )


def run_trial(
    ctx: TrialContext,
    plan: TrialPlan,
    pool: RecordPool,
    ratios: TierRatios,
    params: SelectionParams,
    validator: RtpValidator,
    sink: OutputSink,
) -> SelectionResult:
    """Run the full pipeline for one trial.

    Args:
        ctx: This trial's context.
        plan: Level-wide settings.
        pool: Shared read-only record pools.
        ratios: Rare-tier shares used for the quota.
        params: Strategy tuning.
        validator: Policy-band validator.
        sink: Destination of the finished selection.

    Returns:
        The validated and persisted selection.

    Raises:
        PoolExhaustionError: A pool the strategy needs is empty.
        QuantityMismatchError: The selection length is wrong.
        DeviationError: The achieved ratio is outside the band.
        SinkError: The sink failed.
    """
    quota = compute_quota(plan.target_count, ratios)
    target = SelectionTarget(
        total_bet=ctx.total_bet,
        target_ratio=ctx.level.target_ratio,
        upper_slack=plan.band.upper_slack,
    )
    result = select(
        plan.variant, pool, plan.target_count, target, quota, ctx.rng, params, ctx.log
    )

    if len(result.records) != plan.target_count:
        raise QuantityMismatchError(plan.target_count, len(result.records))

    validator.validate(ctx.level.level_id, ctx.level.target_ratio, result.achieved_ratio)

    try:
        sink.write(result, ctx.level.level_id, ctx.repetition)
    except SinkError:
        raise
    except Exception as e:
        raise SinkError(f"{type(e).__name__}: {e}") from e
    return result
