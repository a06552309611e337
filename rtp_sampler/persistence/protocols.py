"""Interfaces of the record source and the result sink.

The engine and orchestrator depend only on these protocols. Concrete
implementations live beside them in this package.
"""

from __future__ import annotations

from collections.abc import Container
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from rtp_sampler.models import OutcomeRecord, PrizeTier, RecordPool, SelectionResult


@dataclass(frozen=True)
class PoolFilter:
    """Which records belong to a run's pools.

    Standard play excludes feature-buy records. Purchase play keeps only the
    special-play records of one feature-buy mode with no rare tier.

    Example:
        >>> PoolFilter.standard().is_purchase
        False
        >>> PoolFilter.purchase(2).purchase_mode
        2
    """

    purchase_mode: int | None = None
    excluded_mode: int = 2
    max_multiplier: float = 100.0

    @classmethod
    def standard(cls, excluded_mode: int = 2, max_multiplier: float = 100.0) -> PoolFilter:
        return cls(None, excluded_mode, max_multiplier)

    @classmethod
    def purchase(cls, mode: int = 2) -> PoolFilter:
        return cls(purchase_mode=mode)

    @property
    def is_purchase(self) -> bool:
        return self.purchase_mode is not None

    def _in_mode(self, record: OutcomeRecord) -> bool:
        if self.purchase_mode is None:
            return record.purchase_mode != self.excluded_mode
        return (
            record.purchase_mode == self.purchase_mode
            and record.is_special_play
            and record.prize_tier is PrizeTier.NONE
        )

    def accepts_win(self, record: OutcomeRecord) -> bool:
        if not self._in_mode(record) or record.actual_win <= 0:
            return False
        if self.is_purchase:
            return record.actual_win <= record.total_bet
        return record.actual_win < record.total_bet * self.max_multiplier

    def accepts_profit(self, record: OutcomeRecord) -> bool:
        return self._in_mode(record) and record.actual_win > record.total_bet

    def accepts_no_win(self, record: OutcomeRecord) -> bool:
        if record.actual_win != 0:
            return False
        if self.purchase_mode is None:
            return record.purchase_mode != self.excluded_mode and not record.is_special_play
        return record.purchase_mode == self.purchase_mode and record.is_special_play


@runtime_checkable
class CandidateLookup(Protocol):
    """Nearest-value queries used by the engine's fallback phases."""

    def find_nearest(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        tolerance: float,
    ) -> OutcomeRecord | None:
        """Closest unused record within ``target_amount * (1 +/- tolerance)``."""
        ...

    def find_fill_candidates(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        limit: int,
    ) -> list[OutcomeRecord]:
        """Unused records paying at most ``target_amount``, best first."""
        ...


@runtime_checkable
class PoolSource(CandidateLookup, Protocol):
    """Read-only access to persisted outcome records."""

    def fetch_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        ...

    def fetch_profit(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        ...

    def fetch_no_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        ...


@runtime_checkable
class OutputSink(Protocol):
    """Durable destination of finished selections.

    Implementations must be safe to call from several trial threads and
    must accept results in any completion order. Failures are raised.
    """

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        ...


class NullSink:
    """Sink that discards every result."""

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        pass


def load_pool(
    source: PoolSource, pool_filter: PoolFilter, *, use_source_lookup: bool = False
) -> RecordPool:
    """Fetch the three pools from a source.

    Args:
        source: Record source.
        pool_filter: Standard or purchase filter.
        use_source_lookup: Route nearest/fill queries to the source instead
            of the in-memory index built from the fetched pools.

    Returns:
        A RecordPool ready to share across trials.
    """
    return RecordPool(
        win=tuple(source.fetch_win(pool_filter)),
        profit=tuple(source.fetch_profit(pool_filter)),
        no_win=tuple(source.fetch_no_win(pool_filter)),
        lookup=source if use_source_lookup else None,
    )
