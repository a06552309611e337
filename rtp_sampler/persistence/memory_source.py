"""In-memory pool source backed by a record list or a polars frame."""

from __future__ import annotations

import json
from collections.abc import Container, Iterable
from pathlib import Path
from typing import Any

import polars as pl

from rtp_sampler.engine.candidates import CandidateIndex
from rtp_sampler.models import OutcomeRecord
from rtp_sampler.persistence.protocols import PoolFilter


class InMemoryPoolSource:
    """Pool source over records already held in memory.

    Args:
        records: Outcome records.
        lookup_filter: Filter applied to nearest/fill queries.

    Example:
        >>> source = InMemoryPoolSource.from_file("records.parquet")
        >>> len(source.fetch_win(PoolFilter.standard()))
        1834
    """

    def __init__(
        self,
        records: Iterable[OutcomeRecord],
        lookup_filter: PoolFilter | None = None,
    ) -> None:
        self._records: tuple[OutcomeRecord, ...] = tuple(records)
        self.lookup_filter = lookup_filter or PoolFilter.standard()
        self._index = CandidateIndex(
            r
            for r in self._records
            if self.lookup_filter.accepts_win(r) or self.lookup_filter.accepts_profit(r)
        )

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[OutcomeRecord, ...]:
        return self._records

    @classmethod
    def from_frame(
        cls, df: pl.DataFrame, lookup_filter: PoolFilter | None = None
    ) -> InMemoryPoolSource:
        """Build a source from a frame using the stored short column names."""
        missing = [c for c in ("id", "tb", "aw") if c not in df.columns]
        if missing:
            raise ValueError(f"Record frame is missing column(s): {', '.join(missing)}")
        return cls((_row_to_record(row) for row in df.iter_rows(named=True)), lookup_filter)

    @classmethod
    def from_file(
        cls, path: str | Path, lookup_filter: PoolFilter | None = None
    ) -> InMemoryPoolSource:
        """Load records from a ``.parquet``, ``.csv`` or ``.json`` file.

        JSON files may be a plain list of records or a generated result file
        with a ``data`` list.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Record file not found: {path}")
        suffix = path.suffix.lower()
        if suffix == ".parquet":
            return cls.from_frame(pl.read_parquet(path), lookup_filter)
        if suffix == ".csv":
            return cls.from_frame(pl.read_csv(path), lookup_filter)
        if suffix == ".json":
            with open(path) as f:
                payload = json.load(f)
            rows = payload["data"] if isinstance(payload, dict) else payload
            return cls((OutcomeRecord.from_dict(row) for row in rows), lookup_filter)
        raise ValueError(f"Unsupported record file type: {path.suffix}")

    def fetch_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return [r for r in self._records if pool_filter.accepts_win(r)]

    def fetch_profit(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return [r for r in self._records if pool_filter.accepts_profit(r)]

    def fetch_no_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return [r for r in self._records if pool_filter.accepts_no_win(r)]

    def find_nearest(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        tolerance: float,
    ) -> OutcomeRecord | None:
        return self._index.find_nearest(target_amount, excluded_ids, tolerance)

    def find_fill_candidates(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        limit: int,
    ) -> list[OutcomeRecord]:
        return self._index.find_fill_candidates(target_amount, excluded_ids, limit)


def _row_to_record(row: dict[str, Any]) -> OutcomeRecord:
    gd = row.get("gd")
    if isinstance(gd, str) and gd[:1] in ("{", "["):
        gd = json.loads(gd)
    return OutcomeRecord.from_dict({**row, "gd": gd})
