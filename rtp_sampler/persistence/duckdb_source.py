"""DuckDB-backed pool source.

Outcome records live in one table per game, named ``{prefix}{game_id}``,
with the stored short column names (``id, tb, aw, gwt, sp, fb, gd``).
Every query opens its own cursor, so one source can serve all trial
threads.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Container, Iterable, Iterator
from pathlib import Path
from typing import Any

import duckdb
import polars as pl

from rtp_sampler.models import OutcomeRecord
from rtp_sampler.persistence.protocols import PoolFilter

logger = logging.getLogger(__name__)

_SELECT = 'SELECT id, tb, aw, gwt, sp, fb, gd FROM "{table}"'
_RARE_TIERS = "gwt IN (2, 3, 4)"
_FETCH_BATCH = 512

RECORD_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS "{table}" (
    id BIGINT PRIMARY KEY,
    tb DOUBLE NOT NULL,
    aw DOUBLE NOT NULL,
    gwt INTEGER DEFAULT 0,
    sp BOOLEAN DEFAULT FALSE,
    fb INTEGER DEFAULT 0,
    gd VARCHAR
)
"""


def _mode_clause(pool_filter: PoolFilter) -> tuple[str, list[Any]]:
    if pool_filter.purchase_mode is None:
        return "fb != ?", [pool_filter.excluded_mode]
    return "fb = ? AND sp = TRUE AND gwt <= 1", [pool_filter.purchase_mode]


def _win_clause(pool_filter: PoolFilter) -> tuple[str, list[Any]]:
    mode_sql, params = _mode_clause(pool_filter)
    if pool_filter.is_purchase:
        return f"aw > 0 AND aw <= tb AND {mode_sql}", params
    return f"aw > 0 AND aw < tb * ? AND {mode_sql}", [pool_filter.max_multiplier, *params]


def _profit_clause(pool_filter: PoolFilter) -> tuple[str, list[Any]]:
    mode_sql, params = _mode_clause(pool_filter)
    return f"aw > tb AND {mode_sql}", params


def _no_win_clause(pool_filter: PoolFilter) -> tuple[str, list[Any]]:
    if pool_filter.purchase_mode is None:
        return "aw = 0 AND sp != TRUE AND fb != ?", [pool_filter.excluded_mode]
    return "aw = 0 AND sp = TRUE AND fb = ?", [pool_filter.purchase_mode]


def _row_to_record(row: tuple[Any, ...]) -> OutcomeRecord:
    record_id, tb, aw, gwt, sp, fb, gd = row
    if isinstance(gd, str) and gd:
        gd = json.loads(gd)
    return OutcomeRecord.from_dict(
        {"id": record_id, "tb": tb, "aw": aw, "gwt": gwt, "sp": sp, "fb": fb, "gd": gd}
    )


class DuckDBPoolSource:
    """Pool source reading a DuckDB outcome table.

    Args:
        database: DuckDB file path or an open connection.
        table: Table holding the game's outcome records.
        lookup_filter: Filter applied to nearest/fill queries.

    Example:
        >>> source = DuckDBPoolSource("records.duckdb", "game_results_101")
        >>> pool = load_pool(source, PoolFilter.standard())
    """

    def __init__(
        self,
        database: str | Path | duckdb.DuckDBPyConnection,
        table: str,
        lookup_filter: PoolFilter | None = None,
    ) -> None:
        if isinstance(database, duckdb.DuckDBPyConnection):
            self.conn = database
        else:
            path = Path(database)
            if not path.exists():
                raise FileNotFoundError(f"Record database not found: {path}")
            self.conn = duckdb.connect(str(path), read_only=True)
        self.table = table
        self.lookup_filter = lookup_filter or PoolFilter.standard()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> DuckDBPoolSource:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _query(self, where: str, params: list[Any], order: str = "id") -> list[OutcomeRecord]:
        sql = f"{_SELECT.format(table=self.table)} WHERE {where} ORDER BY {order}"
        logger.debug("pool query: %s %s", sql, params)
        cursor = self.conn.cursor()
        try:
            rows = cursor.execute(sql, params).fetchall()
        finally:
            cursor.close()
        return [_row_to_record(row) for row in rows]

    def _stream(self, where: str, params: list[Any], order: str) -> Iterator[OutcomeRecord]:
        sql = f"{_SELECT.format(table=self.table)} WHERE {where} ORDER BY {order}"
        cursor = self.conn.cursor()
        try:
            cursor.execute(sql, params)
            while True:
                rows = cursor.fetchmany(_FETCH_BATCH)
                if not rows:
                    return
                for row in rows:
                    yield _row_to_record(row)
        finally:
            cursor.close()

    def fetch_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return self._query(*_win_clause(pool_filter))

    def fetch_profit(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return self._query(*_profit_clause(pool_filter))

    def fetch_no_win(self, pool_filter: PoolFilter) -> list[OutcomeRecord]:
        return self._query(*_no_win_clause(pool_filter))

    def _lookup_clause(self) -> tuple[str, list[Any]]:
        win_sql, win_params = _win_clause(self.lookup_filter)
        profit_sql, profit_params = _profit_clause(self.lookup_filter)
        return f"(({win_sql}) OR ({profit_sql}))", [*win_params, *profit_params]

    def find_nearest(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        tolerance: float,
    ) -> OutcomeRecord | None:
        """Closest unused record within ``target_amount * (1 +/- tolerance)``."""
        if target_amount <= 0:
            return None
        where, params = self._lookup_clause()
        slack = target_amount * tolerance
        where = f"{where} AND aw BETWEEN ? AND ?"
        params = [*params, target_amount - slack, target_amount + slack]
        order = f"ABS(aw - {float(target_amount)!r}), id"
        for record in self._stream(where, params, order):
            if record.id not in excluded_ids:
                return record
        return None

    def find_fill_candidates(
        self,
        target_amount: float,
        excluded_ids: Container[int],
        limit: int,
    ) -> list[OutcomeRecord]:
        """Unused records paying at most ``target_amount``, non-rare first."""
        if target_amount <= 0 or limit <= 0:
            return []
        where, params = self._lookup_clause()
        where = f"{where} AND aw > 0 AND aw <= ?"
        params = [*params, target_amount]
        picked: list[OutcomeRecord] = []
        for record in self._stream(where, params, f"({_RARE_TIERS}), aw DESC, id"):
            if record.id in excluded_ids:
                continue
            picked.append(record)
            if len(picked) >= limit:
                break
        return picked


def write_record_table(
    conn: duckdb.DuckDBPyConnection, table: str, records: Iterable[OutcomeRecord]
) -> int:
    """Create the outcome table if needed and insert records into it.

    Uses a polars DataFrame so the insert goes through Arrow in one batch.

    Returns:
        Number of records written.
    """
    conn.execute(RECORD_TABLE_DDL.format(table=table))
    rows = [
        {
            "id": r.id,
            "tb": r.total_bet,
            "aw": r.actual_win,
            "gwt": r.prize_tier.code,
            "sp": r.is_special_play,
            "fb": r.purchase_mode,
            "gd": json.dumps(r.payload) if r.payload is not None else None,
        }
        for r in records
    ]
    if not rows:
        return 0
    df = pl.DataFrame(
        rows,
        schema={
            "id": pl.Int64,
            "tb": pl.Float64,
            "aw": pl.Float64,
            "gwt": pl.Int32,
            "sp": pl.Boolean,
            "fb": pl.Int32,
            "gd": pl.Utf8,
        },
    )
    conn.execute(f'INSERT INTO "{table}" SELECT * FROM df')
    return len(rows)
