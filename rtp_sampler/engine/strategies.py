"""Selection strategy variants.

All variants share one contract, ``select(pool, target_count, target, quota,
rng, log)``, and the admission rules of ``SelectionBuilder``. They differ in
how the paying records are chosen before padding and correction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

from rtp_sampler.config.levels import StrategyVariant
from rtp_sampler.engine import phases
from rtp_sampler.engine.builder import SelectionBuilder
from rtp_sampler.errors import PoolExhaustionError
from rtp_sampler.models import Quota, RecordPool, SelectionResult, SelectionTarget

if TYPE_CHECKING:
    from rtp_sampler.orchestrator.log_channel import TrialLog


@dataclass(frozen=True)
class Stage:
    """Multiplier band of the staged fill: ``min < win / bet <= max``."""

    ratio: float
    min_multiplier: float = 0.0
    max_multiplier: float | None = None

    def contains(self, multiplier: float) -> bool:
        if multiplier <= self.min_multiplier:
            return False
        return self.max_multiplier is None or multiplier <= self.max_multiplier


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage(0.20, 0.0, 1.0),
    Stage(0.50, 1.0, 20.0),
    Stage(0.15, 20.0, 50.0),
    Stage(0.15, 50.0, None),
)


@dataclass(frozen=True)
class SelectionParams:
    """Tuning knobs shared by the strategies."""

    stage1_min_ratio: float = 0.3
    stage1_max_ratio: float = 0.5
    win_top_ratio: float = 0.3
    stages: tuple[Stage, ...] = field(default_factory=lambda: DEFAULT_STAGES)
    nearest_tolerance: float = 0.005
    fill_candidate_limit: int = 100
    max_top_up_passes: int = 3
    max_correction_swaps: int = 500


@runtime_checkable
class SelectionStrategy(Protocol):
    """Interface every strategy variant implements."""

    variant: StrategyVariant

    def select(
        self,
        pool: RecordPool,
        target_count: int,
        target: SelectionTarget,
        quota: Quota,
        rng: np.random.Generator,
        log: TrialLog | None = None,
    ) -> SelectionResult:
        """Select exactly ``target_count`` records aiming at ``target``."""
        ...


class _PhasedStrategy:
    """Common skeleton: fill, pad, correct, freeze."""

    variant: StrategyVariant

    def __init__(self, params: SelectionParams | None = None) -> None:
        self.params = params or SelectionParams()

    def select(
        self,
        pool: RecordPool,
        target_count: int,
        target: SelectionTarget,
        quota: Quota,
        rng: np.random.Generator,
        log: TrialLog | None = None,
    ) -> SelectionResult:
        if target_count <= 0:
            raise ValueError(f"target_count must be positive, got {target_count}")
        if target.target_win > 0 and not pool.win and not pool.profit:
            raise PoolExhaustionError("win")

        builder = SelectionBuilder(target_count, target, quota)
        self._fill(builder, pool, rng)
        paying = builder.count
        phases.pad_with_no_win(builder, pool.no_win, rng)
        down = phases.correct_downward(builder, pool, self.params.max_correction_swaps, log)
        up = phases.correct_upward(
            builder, pool, self.params.max_correction_swaps - down, log
        )

        if log is not None:
            log.info(
                f"{self.variant.value}: {paying} paying + {target_count - paying} padding, "
                f"{down + up} correction swaps, win {builder.total_win:.2f} "
                f"of target {target.target_win:.2f}"
            )
        return builder.build(self.variant.value, rng)

    def _fill(
        self, builder: SelectionBuilder, pool: RecordPool, rng: np.random.Generator
    ) -> None:
        raise NotImplementedError


class BaselineStrategy(_PhasedStrategy):
    """Shuffled greedy fill, then a near-exact match, then ranked fill passes."""

    variant = StrategyVariant.BASELINE

    def _fill(
        self, builder: SelectionBuilder, pool: RecordPool, rng: np.random.Generator
    ) -> None:
        phases.primary_fill(builder, pool.win, rng, stop_in_band=True)
        if phases.match_single(builder, pool.lookup, self.params.nearest_tolerance):
            return
        phases.fill_from_candidates(
            builder,
            pool.lookup,
            self.params.fill_candidate_limit,
            self.params.max_top_up_passes,
        )


class StagedStrategy(_PhasedStrategy):
    """Fill a fixed share of slots from each multiplier band, then close the gap."""

    variant = StrategyVariant.STAGED

    def _fill(
        self, builder: SelectionBuilder, pool: RecordPool, rng: np.random.Generator
    ) -> None:
        for stage in self.params.stages:
            band = [r for r in pool.win if stage.contains(r.multiplier)]
            phases.primary_fill(
                builder, band, rng, limit=int(builder.target_count * stage.ratio)
            )
        _close_and_top_up(builder, pool, rng, self.params)


class DynamicRatioStrategy(_PhasedStrategy):
    """Random-size first stage, then probability-blended gap closing."""

    variant = StrategyVariant.DYNAMIC_RATIO

    def _fill(
        self, builder: SelectionBuilder, pool: RecordPool, rng: np.random.Generator
    ) -> None:
        share = rng.uniform(self.params.stage1_min_ratio, self.params.stage1_max_ratio)
        phases.primary_fill(
            builder, pool.win, rng, limit=int(round(builder.target_count * share))
        )
        _close_and_top_up(builder, pool, rng, self.params)


class HighRtpStrategy(_PhasedStrategy):
    """Largest wins first; overflow past the bound, then correct downward."""

    variant = StrategyVariant.HIGH_RTP

    def _fill(
        self, builder: SelectionBuilder, pool: RecordPool, rng: np.random.Generator
    ) -> None:
        descending = sorted(pool.win, key=lambda r: (-r.actual_win, r.id))
        phases.primary_fill(builder, descending, rng, shuffle=False)
        if builder.gap <= 0:
            return
        # Overflow: smallest unused wins ignoring the bound until the target is met.
        for record in reversed(descending):
            if builder.is_full or builder.gap <= 0:
                break
            builder.try_admit(record, bounded=False)


def _close_and_top_up(
    builder: SelectionBuilder,
    pool: RecordPool,
    rng: np.random.Generator,
    params: SelectionParams,
) -> None:
    phases.close_gap(builder, pool, rng)
    if phases.match_single(builder, pool.lookup, params.nearest_tolerance):
        return
    phases.top_up_by_amount(builder, pool, params.win_top_ratio)


STRATEGIES: dict[StrategyVariant, type[_PhasedStrategy]] = {
    StrategyVariant.BASELINE: BaselineStrategy,
    StrategyVariant.STAGED: StagedStrategy,
    StrategyVariant.DYNAMIC_RATIO: DynamicRatioStrategy,
    StrategyVariant.HIGH_RTP: HighRtpStrategy,
}


def build_strategy(
    variant: StrategyVariant, params: SelectionParams | None = None
) -> SelectionStrategy:
    """Instantiate the strategy implementing ``variant``."""
    return STRATEGIES[StrategyVariant(variant)](params)


def select(
    variant: StrategyVariant,
    pool: RecordPool,
    target_count: int,
    target: SelectionTarget,
    quota: Quota,
    rng: np.random.Generator,
    params: SelectionParams | None = None,
    log: TrialLog | None = None,
) -> SelectionResult:
    """Run one selection with the given strategy variant.

    Args:
        variant: Strategy to use.
        pool: Shared read-only record pools.
        target_count: Exact number of records to return.
        target: Target and upper win amounts.
        quota: Rare-tier caps.
        rng: Generator owned by the calling trial.
        params: Strategy tuning. Defaults to ``SelectionParams()``.
        log: Optional per-trial log buffer.

    Returns:
        The frozen selection.

    Raises:
        PoolExhaustionError: If a pool the strategy needs is empty.
    """
    return build_strategy(variant, params).select(pool, target_count, target, quota, rng, log)
