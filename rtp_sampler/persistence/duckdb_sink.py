"""DuckDB result sink and JSON result importer.

Selections become ``GameResult`` rows: one row per selected record with its
1-based position (``sr_id``) inside the trial.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import duckdb
import polars as pl

from rtp_sampler.errors import SinkError
from rtp_sampler.models import OutcomeRecord, SelectionResult
from rtp_sampler.persistence.json_sink import read_result_file

logger = logging.getLogger(__name__)

RESULT_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS "{table}" (
    run_id VARCHAR,
    rtp_level INTEGER NOT NULL,
    sr_number INTEGER NOT NULL,
    sr_id INTEGER NOT NULL,
    bet DOUBLE NOT NULL,
    win DOUBLE NOT NULL,
    detail VARCHAR
)
"""

RESULT_SCHEMA = {
    "run_id": pl.Utf8,
    "rtp_level": pl.Int32,
    "sr_number": pl.Int32,
    "sr_id": pl.Int32,
    "bet": pl.Float64,
    "win": pl.Float64,
    "detail": pl.Utf8,
}


def _result_rows(
    run_id: str | None,
    level_id: int,
    repetition: int,
    records: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    return [
        {
            "run_id": run_id,
            "rtp_level": level_id,
            "sr_number": repetition,
            "sr_id": position,
            "bet": round(float(record.get("tb") or 0), 2),
            "win": round(float(record.get("aw") or 0), 2),
            "detail": json.dumps(record["gd"]) if record.get("gd") is not None else None,
        }
        for position, record in enumerate(records, start=1)
    ]


class DuckDBResultSink:
    """Appends selections to a DuckDB ``GameResult`` table.

    A single connection is shared, so writes are serialized with a lock.

    Args:
        database: DuckDB file path or an open connection.
        table: Result table name, created if missing.
        run_id: Run identifier stored with every row.

    Example:
        >>> with DuckDBResultSink("results.duckdb", run_id="rtp-001") as sink:
        ...     sink.write(result, level_id=4, repetition=1)
    """

    def __init__(
        self,
        database: str | Path | duckdb.DuckDBPyConnection,
        table: str = "game_results",
        run_id: str | None = None,
    ) -> None:
        if isinstance(database, duckdb.DuckDBPyConnection):
            self.conn = database
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
            self.conn = duckdb.connect(str(database))
        self.table = table
        self.run_id = run_id
        self._lock = threading.Lock()
        self.conn.execute(RESULT_TABLE_DDL.format(table=table))

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> DuckDBResultSink:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def write(self, result: SelectionResult, level_id: int, repetition: int) -> None:
        self.write_rows(level_id, repetition, [r.to_dict() for r in result.records])

    def write_rows(
        self, level_id: int, repetition: int, records: Sequence[Mapping[str, Any]]
    ) -> int:
        """Insert stored-format records as one trial's rows.

        Returns:
            Number of rows written.
        """
        if not records:
            return 0
        df = pl.DataFrame(
            _result_rows(self.run_id, level_id, repetition, records), schema=RESULT_SCHEMA
        )
        try:
            with self._lock:
                self.conn.execute(f'INSERT INTO "{self.table}" SELECT * FROM df')
        except duckdb.Error as e:
            raise SinkError(f"failed to insert into {self.table}: {e}") from e
        logger.debug("inserted %d rows for level %d #%d", len(df), level_id, repetition)
        return len(df)

    def count(self, level_id: int | None = None) -> int:
        sql = f'SELECT COUNT(*) FROM "{self.table}"'
        params: list[Any] = []
        if level_id is not None:
            sql += " WHERE rtp_level = ?"
            params.append(level_id)
        with self._lock:
            row = self.conn.execute(sql, params).fetchone()
        return int(row[0]) if row else 0


def import_json_results(paths: Iterable[str | Path], sink: DuckDBResultSink) -> int:
    """Load result files written by ``JsonFileSink`` into DuckDB.

    Args:
        paths: Result files.
        sink: Destination sink.

    Returns:
        Total number of rows written.
    """
    total = 0
    for path in paths:
        document = read_result_file(path)
        records = [OutcomeRecord.from_dict(row).to_dict() for row in document["data"]]
        total += sink.write_rows(int(document["rtpLevel"]), int(document["srNumber"]), records)
    return total
