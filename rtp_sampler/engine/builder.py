"""Mutable per-trial selection state.

A ``SelectionBuilder`` is owned by exactly one trial. It enforces the
admission rules every phase shares: unused id, tier under quota, positive
payout and the upper win bound.
"""

from __future__ import annotations

import math
from collections import Counter

import numpy as np

from rtp_sampler.models import (
    OutcomeRecord,
    PrizeTier,
    Quota,
    SelectionResult,
    SelectionTarget,
)


class SelectionBuilder:
    """Accumulates records for one trial.

    Ids stay in ``used_ids`` after being swapped out, so a record is never
    admitted twice in the same trial. Only ``pad`` may repeat an id.
    """

    def __init__(self, target_count: int, target: SelectionTarget, quota: Quota) -> None:
        self.target_count = target_count
        self.target = target
        self.quota = quota
        self.records: list[OutcomeRecord] = []
        self.used_ids: set[int] = set()
        self.tier_counts: Counter[PrizeTier] = Counter()
        self.correction_swaps = 0
        self.padding_repeats = 0
        self._total = 0.0

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def slots_left(self) -> int:
        return self.target_count - len(self.records)

    @property
    def is_full(self) -> bool:
        return len(self.records) >= self.target_count

    @property
    def total_win(self) -> float:
        return self._total

    @property
    def gap(self) -> float:
        """Win still missing to reach the target (negative when above it)."""
        return self.target.target_win - self._total

    @property
    def headroom(self) -> float:
        """Win that can still be added before crossing the upper bound."""
        return self.target.upper_win - self._total

    @property
    def in_band(self) -> bool:
        return self.target.target_win <= self._total <= self.target.upper_win

    @property
    def per_unit_bet(self) -> float:
        return self.target.total_bet / self.target_count

    def quota_allows(
        self, record: OutcomeRecord, releasing: OutcomeRecord | None = None
    ) -> bool:
        """Check the tier cap, optionally as if ``releasing`` were removed first."""
        cap = self.quota.cap_for(record.prize_tier)
        if cap is None:
            return True
        current = self.tier_counts[record.prize_tier]
        if releasing is not None and releasing.prize_tier is record.prize_tier:
            current -= 1
        return current < cap

    def can_admit(self, record: OutcomeRecord, *, bounded: bool = True) -> bool:
        if self.is_full or record.id in self.used_ids or record.actual_win <= 0:
            return False
        if not self.quota_allows(record):
            return False
        if bounded and self._total + record.actual_win > self.target.upper_win:
            return False
        return True

    def try_admit(self, record: OutcomeRecord, *, bounded: bool = True) -> bool:
        """Admit a paying record if every admission rule holds.

        Args:
            record: Candidate record.
            bounded: Enforce the upper win bound. Only the high-RTP overflow
                fill turns this off.

        Returns:
            True if the record was added.
        """
        if not self.can_admit(record, bounded=bounded):
            return False
        self._append(record)
        return True

    def pad(self, record: OutcomeRecord) -> None:
        """Append a zero-payout record, allowing an id to repeat."""
        if self.is_full:
            raise ValueError("selection is already full")
        if record.actual_win != 0:
            raise ValueError(f"padding record {record.id} pays {record.actual_win}")
        if record.id in self.used_ids:
            self.padding_repeats += 1
        self._append(record)

    def _append(self, record: OutcomeRecord) -> None:
        self.records.append(record)
        self.used_ids.add(record.id)
        self.tier_counts[record.prize_tier] += 1
        self._total += record.actual_win

    def swap(self, index: int, replacement: OutcomeRecord) -> OutcomeRecord:
        """Replace the record at ``index`` and return the removed one.

        The removed id stays retired for the rest of the trial.
        """
        removed = self.records[index]
        self.records[index] = replacement
        self.used_ids.add(replacement.id)
        self.tier_counts[removed.prize_tier] -= 1
        self.tier_counts[replacement.prize_tier] += 1
        self._total = math.fsum(r.actual_win for r in self.records)
        self.correction_swaps += 1
        return removed

    def largest_index(self) -> int | None:
        """Index of the most valuable selected record, if any pays."""
        if not self.records:
            return None
        index = max(range(len(self.records)), key=lambda i: self.records[i].actual_win)
        if self.records[index].actual_win <= 0:
            return None
        return index

    def zero_indices(self) -> list[int]:
        return [i for i, r in enumerate(self.records) if r.actual_win == 0]

    def build(self, variant: str, rng: np.random.Generator) -> SelectionResult:
        """Freeze the selection, shuffling its order with the trial RNG."""
        order = rng.permutation(len(self.records))
        records = tuple(self.records[int(i)] for i in order)
        counts = {tier: self.tier_counts.get(tier, 0) for tier in PrizeTier}
        return SelectionResult(
            records=records,
            total_bet=self.target.total_bet,
            tier_counts=counts,
            variant=variant,
            correction_swaps=self.correction_swaps,
            padding_repeats=self.padding_repeats,
        )
