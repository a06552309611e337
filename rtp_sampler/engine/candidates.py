"""Sorted nearest-value index over payout amounts.

The index is built once per pool and only read afterwards, so concurrent
trials share it without locking. Exclusion of already-used ids happens at
query time against the caller's own id set.
"""

from __future__ import annotations

from collections.abc import Container, Iterable, Iterator

import numpy as np

from rtp_sampler.models import OutcomeRecord


class CandidateIndex:
    """Paying records sorted by ``actual_win`` for range and nearest lookups.

    Records with zero payout are skipped and duplicate ids keep their first
    occurrence.

    Example:
        >>> index = CandidateIndex(records)
        >>> index.find_nearest(12.0, excluded_ids=set(), tolerance=0.005)
        OutcomeRecord(id=6, ...)
    """

    def __init__(self, records: Iterable[OutcomeRecord]) -> None:
        unique: dict[int, OutcomeRecord] = {}
        for record in records:
            if record.actual_win > 0:
                unique.setdefault(record.id, record)
        ordered = sorted(unique.values(), key=lambda r: (r.actual_win, r.id))
        self._records: tuple[OutcomeRecord, ...] = tuple(ordered)
        self._amounts = np.fromiter(
            (r.actual_win for r in ordered), dtype=np.float64, count=len(ordered)
        )

    def __len__(self) -> int:
        return len(self._records)

    def _bounds(self, low: float, high: float) -> tuple[int, int]:
        lo = int(np.searchsorted(self._amounts, low, side="left"))
        hi = int(np.searchsorted(self._amounts, high, side="right"))
        return lo, hi

    def find_nearest(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        tolerance: float,
    ) -> OutcomeRecord | None:
        """Return the unused record closest to ``target_amount``.

        Only records within ``target_amount * (1 +/- tolerance)`` qualify.

        Args:
            target_amount: Amount the record should pay.
            excluded_ids: Ids that must not be returned.
            tolerance: Relative tolerance around the target.

        Returns:
            The closest qualifying record, or None.
        """
        if target_amount <= 0:
            return None
        slack = target_amount * tolerance
        return next(
            self.iter_between(
                target_amount - slack, target_amount + slack, excluded_ids, around=target_amount
            ),
            None,
        )

    def find_fill_candidates(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        limit: int,
    ) -> list[OutcomeRecord]:
        """Rank unused records paying at most ``target_amount``.

        Non-rare tiers come first, then rare ones, each by amount descending.
        """
        if target_amount <= 0 or limit <= 0:
            return []
        _, hi = self._bounds(0.0, target_amount)
        common: list[OutcomeRecord] = []
        rare: list[OutcomeRecord] = []
        for i in range(hi - 1, -1, -1):
            record = self._records[i]
            if record.id in excluded_ids:
                continue
            if record.prize_tier.is_rare:
                if len(rare) < limit:
                    rare.append(record)
            else:
                common.append(record)
                if len(common) >= limit:
                    break
        return (common + rare)[:limit]

    def iter_between(
        self,
        low: float,
        high: float,
        excluded_ids: Container[int],
        around: float | None = None,
    ) -> Iterator[OutcomeRecord]:
        """Yield unused records with ``low <= actual_win <= high``.

        Records come ordered by distance to ``around`` when given, otherwise
        ascending by amount.
        """
        if high < low or not self._records:
            return
        lo, hi = self._bounds(low, high)
        if lo >= hi:
            return
        if around is None:
            offsets: Iterable[int] = range(hi - lo)
        else:
            distances = np.abs(self._amounts[lo:hi] - around)
            offsets = (int(o) for o in np.argsort(distances, kind="stable"))
        for offset in offsets:
            record = self._records[lo + offset]
            if record.id not in excluded_ids:
                yield record

    def iter_descending(
        self, ceiling: float, excluded_ids: Container[int]
    ) -> Iterator[OutcomeRecord]:
        """Yield unused records paying at most ``ceiling``, largest first."""
        if ceiling <= 0 or not self._records:
            return
        _, hi = self._bounds(0.0, ceiling)
        for i in range(hi - 1, -1, -1):
            record = self._records[i]
            if record.id not in excluded_ids:
                yield record
