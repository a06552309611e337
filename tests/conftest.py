"""Pytest configuration and shared fixtures.

Provides:
- ``make_record``: factory for single outcome records
- ``synthetic_records`` / ``synthetic_pool``: a deterministic record table
  with fine-grained small wins, coarser profits and a few rare-tier hits
- ``coarse_pool``: the ten-record pool whose win amounts are too coarse to
  hit a tight band
- ``collecting_sink``: thread-safe in-memory output sink
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from rtp_sampler.models import OutcomeRecord, PrizeTier, RecordPool, SelectionResult


class CollectingSink:
    """Output sink that keeps every result in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.results: dict[tuple[int, int], SelectionResult] = {}

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        with self._lock:
            self.results[(level_id, repetition)] = result

    def ids(self) -> dict[tuple[int, int], tuple[int, ...]]:
        with self._lock:
            return {key: tuple(r.id for r in res.records) for key, res in self.results.items()}


@pytest.fixture
def make_record() -> Callable[..., OutcomeRecord]:
    """Factory for outcome records with a unit stake by default."""

    def _make(
        record_id: int,
        actual_win: float,
        total_bet: float = 1.0,
        tier: PrizeTier = PrizeTier.NONE,
        **kwargs: Any,
    ) -> OutcomeRecord:
        return OutcomeRecord(
            id=record_id,
            total_bet=total_bet,
            actual_win=actual_win,
            prize_tier=tier,
            **kwargs,
        )

    return _make


def build_synthetic_records() -> list[OutcomeRecord]:
    records: list[OutcomeRecord] = []
    next_id = 1

    def add(actual_win: float, tier: PrizeTier = PrizeTier.NONE) -> None:
        nonlocal next_id
        records.append(
            OutcomeRecord(
                id=next_id,
                total_bet=1.0,
                actual_win=actual_win,
                prize_tier=tier,
                payload={"spin": next_id},
            )
        )
        next_id += 1

    for _ in range(600):
        add(0.0)
    for i in range(500):
        add(round(0.1 * (1 + i % 50), 2))
    for i in range(120):
        add(float(2 + i % 30))
    for _ in range(6):
        add(80.0, PrizeTier.BIG)
    for _ in range(3):
        add(150.0, PrizeTier.MEGA)
    return records


@pytest.fixture
def synthetic_records() -> list[OutcomeRecord]:
    return build_synthetic_records()


@pytest.fixture
def synthetic_pool(synthetic_records: list[OutcomeRecord]) -> RecordPool:
    return RecordPool.from_records(synthetic_records)


@pytest.fixture
def coarse_pool() -> RecordPool:
    """Amounts [0, 0, 5, 8, 12, 20, 25, 40, 60, 100] with unit stakes."""
    amounts = [0, 0, 5, 8, 12, 20, 25, 40, 60, 100]
    records = [
        OutcomeRecord(id=i + 1, total_bet=1.0, actual_win=float(a))
        for i, a in enumerate(amounts)
    ]
    return RecordPool.from_records(records)


@pytest.fixture
def collecting_sink() -> CollectingSink:
    return CollectingSink()
