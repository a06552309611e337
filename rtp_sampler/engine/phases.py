"""Selection phases shared by every strategy variant.

Each phase works on a trial's ``SelectionBuilder`` and draws randomness only
from the trial's own generator. Strategies differ in which phases they run
and in what order, never in the admission rules.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

import numpy as np

from rtp_sampler.engine.builder import SelectionBuilder
from rtp_sampler.errors import PoolExhaustionError
from rtp_sampler.models import OutcomeRecord, RecordPool

if TYPE_CHECKING:
    from rtp_sampler.orchestrator.log_channel import TrialLog
    from rtp_sampler.persistence.protocols import CandidateLookup

PROFIT_PROBABILITY_FLOOR = 0.2
PROFIT_PROBABILITY_CEILING = 0.8
EXTRA_GAP_ROUNDS = 1024


def admission_probability(
    remaining_win: float,
    per_unit_bet: float,
    remaining_slots: int,
    floor: float = PROFIT_PROBABILITY_FLOOR,
    ceiling: float = PROFIT_PROBABILITY_CEILING,
) -> float:
    """Probability of drawing from the profit pool during gap closing.

    ``clamp(remaining_win / (per_unit_bet * remaining_slots), floor, ceiling)``.
    A large shortfall per open slot favours the larger profit records.

    Example:
        >>> admission_probability(50.0, 1.0, 100)
        0.5
        >>> admission_probability(500.0, 1.0, 100)
        0.8
    """
    if remaining_slots <= 0 or per_unit_bet <= 0:
        return floor
    raw = remaining_win / (per_unit_bet * remaining_slots)
    return min(max(raw, floor), ceiling)


def _shuffled(records: Sequence[OutcomeRecord], rng: np.random.Generator) -> Iterator[OutcomeRecord]:
    return iter([records[int(i)] for i in rng.permutation(len(records))])


def _admit_next(builder: SelectionBuilder, source: Iterator[OutcomeRecord]) -> bool:
    for record in source:
        if builder.try_admit(record):
            return True
    return False


def primary_fill(
    builder: SelectionBuilder,
    records: Sequence[OutcomeRecord],
    rng: np.random.Generator,
    *,
    limit: int | None = None,
    stop_in_band: bool = False,
    shuffle: bool = True,
    bounded: bool = True,
) -> int:
    """Greedily admit records in one pass.

    Args:
        builder: Trial selection state.
        records: Candidate records in their stored order.
        rng: Trial random generator, used for the shuffle.
        limit: Maximum records this pass may admit.
        stop_in_band: Stop as soon as the total is inside the band.
        shuffle: Visit records in a fresh random order. When False the
            given order is kept.
        bounded: Enforce the upper win bound.

    Returns:
        Number of records admitted.
    """
    order: Sequence[int] | np.ndarray = (
        rng.permutation(len(records)) if shuffle else range(len(records))
    )
    admitted = 0
    for i in order:
        if builder.is_full or (limit is not None and admitted >= limit):
            break
        if builder.try_admit(records[int(i)], bounded=bounded):
            admitted += 1
            if stop_in_band and builder.in_band:
                break
    return admitted


def close_gap(
    builder: SelectionBuilder,
    pool: RecordPool,
    rng: np.random.Generator,
    *,
    max_rounds: int | None = None,
) -> int:
    """Blend profit and win draws until the target is reached.

    Each round recomputes ``admission_probability`` and tries the favoured
    pool first, falling back to the other one.

    Returns:
        Number of records admitted.
    """
    profit = _shuffled(pool.profit, rng)
    win = _shuffled(pool.win, rng)
    rounds = max_rounds if max_rounds is not None else (
        len(pool.profit) + len(pool.win) + EXTRA_GAP_ROUNDS
    )
    admitted = 0
    for _ in range(rounds):
        if builder.is_full or builder.gap <= 0:
            break
        p = admission_probability(builder.gap, builder.per_unit_bet, builder.slots_left)
        sources = (profit, win) if rng.random() < p else (win, profit)
        if not any(_admit_next(builder, source) for source in sources):
            break
        admitted += 1
    return admitted


def match_single(
    builder: SelectionBuilder, lookup: CandidateLookup, tolerance: float
) -> bool:
    """Close the gap with one record when a near-exact amount exists."""
    if builder.is_full or builder.gap <= 0:
        return False
    candidate = lookup.find_nearest(builder.gap, builder.used_ids, tolerance)
    if candidate is None:
        return False
    return builder.try_admit(candidate)


def top_up_by_amount(
    builder: SelectionBuilder, pool: RecordPool, win_top_ratio: float
) -> int:
    """Admit the largest unused wins, then profit records nearest the gap.

    At most ``ceil(slots_left * win_top_ratio)`` win records are taken.
    """
    if builder.is_full or builder.gap <= 0:
        return 0
    admitted = 0
    share = math.ceil(builder.slots_left * win_top_ratio)
    used = builder.used_ids
    largest_first = sorted(
        (r for r in pool.win if r.id not in used and r.actual_win <= builder.headroom),
        key=lambda r: (-r.actual_win, r.id),
    )
    for record in largest_first:
        if share <= 0 or builder.is_full or builder.gap <= 0:
            break
        if builder.try_admit(record):
            admitted += 1
            share -= 1

    gap = builder.gap
    if gap <= 0 or builder.is_full:
        return admitted
    by_distance = sorted(
        (r for r in pool.profit if r.id not in used),
        key=lambda r: (abs(r.actual_win - gap), r.id),
    )
    for record in by_distance:
        if builder.is_full or builder.gap <= 0:
            break
        if builder.try_admit(record):
            admitted += 1
    return admitted


def fill_from_candidates(
    builder: SelectionBuilder,
    lookup: CandidateLookup,
    limit: int,
    max_passes: int,
) -> int:
    """Run bounded passes of ranked fill candidates that fit the headroom."""
    admitted = 0
    for _ in range(max_passes):
        if builder.is_full or builder.gap <= 0:
            break
        candidates = lookup.find_fill_candidates(builder.headroom, builder.used_ids, limit)
        progressed = False
        for candidate in candidates:
            if builder.is_full or builder.gap <= 0:
                break
            if builder.try_admit(candidate):
                admitted += 1
                progressed = True
        if not progressed:
            break
    return admitted


def pad_with_no_win(
    builder: SelectionBuilder,
    no_win: Sequence[OutcomeRecord],
    rng: np.random.Generator,
) -> int:
    """Fill every remaining slot with zero-payout records.

    Unused records go first in shuffled order. Only when they run out are
    records repeated.

    Raises:
        PoolExhaustionError: If slots remain and the no-win pool is empty.
    """
    needed = builder.slots_left
    if needed <= 0:
        return 0
    if not no_win:
        raise PoolExhaustionError("no-win", needed=needed)
    order = [no_win[int(i)] for i in rng.permutation(len(no_win))]
    for record in order:
        if builder.is_full:
            break
        if record.id not in builder.used_ids:
            builder.pad(record)
    i = 0
    while not builder.is_full:
        builder.pad(order[i % len(order)])
        i += 1
    return needed


def correct_downward(
    builder: SelectionBuilder,
    pool: RecordPool,
    max_swaps: int,
    log: TrialLog | None = None,
) -> int:
    """Swap out the most valuable records until the total is under the bound.

    Replacement preference for the removed record:

    1. an unused no-win record, when the rest still reaches the target;
    2. a paying record that lands the total inside the band, nearest its middle;
    3. the smallest record that still lowers the total.

    Quotas are checked for every swapped-in record. The loop ends when the
    total is back under the bound, no swap helps, or ``max_swaps`` is spent.

    Returns:
        Number of swaps made.
    """
    target = builder.target
    swaps = 0
    while builder.headroom < 0 and swaps < max_swaps:
        index = builder.largest_index()
        if index is None:
            break
        largest = builder.records[index]
        base = builder.total_win - largest.actual_win
        low = target.target_win - base
        high = target.upper_win - base
        used = builder.used_ids

        replacement: OutcomeRecord | None = None
        if low <= 0:
            replacement = next(
                (
                    r
                    for r in pool.no_win
                    if r.id not in used and builder.quota_allows(r, releasing=largest)
                ),
                None,
            )
        if replacement is None:
            replacement = next(
                (
                    r
                    for r in pool.index.iter_between(max(low, 0.0), high, used, around=(low + high) / 2)
                    if builder.quota_allows(r, releasing=largest)
                ),
                None,
            )
        if replacement is None:
            replacement = next(
                (
                    r
                    for r in pool.index.iter_between(high, largest.actual_win, used)
                    if r.actual_win < largest.actual_win
                    and builder.quota_allows(r, releasing=largest)
                ),
                None,
            )
        if replacement is None:
            break
        builder.swap(index, replacement)
        swaps += 1

    if builder.headroom < 0 and log is not None:
        log.warning(
            f"downward correction stopped after {swaps} swaps, "
            f"{-builder.headroom:.2f} above the upper bound"
        )
    return swaps


def correct_upward(
    builder: SelectionBuilder,
    pool: RecordPool,
    max_swaps: int,
    log: TrialLog | None = None,
) -> int:
    """Replace zero-payout records until the total reaches the target.

    Prefers a record landing the total inside the band, otherwise the largest
    record that still fits under the upper bound.

    Returns:
        Number of swaps made.
    """
    swaps = 0
    while builder.gap > 0 and swaps < max_swaps:
        zeros = builder.zero_indices()
        if not zeros:
            break
        gap, headroom = builder.gap, builder.headroom
        used = builder.used_ids
        candidate = next(
            (
                r
                for r in pool.index.iter_between(gap, headroom, used, around=(gap + headroom) / 2)
                if builder.quota_allows(r)
            ),
            None,
        )
        if candidate is None:
            candidate = next(
                (r for r in pool.index.iter_descending(headroom, used) if builder.quota_allows(r)),
                None,
            )
        if candidate is None:
            break
        builder.swap(zeros[0], candidate)
        swaps += 1

    if builder.gap > 0 and log is not None:
        log.warning(
            f"upward repair stopped after {swaps} swaps, "
            f"{builder.gap:.2f} below the target"
        )
    return swaps
