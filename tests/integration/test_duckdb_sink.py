"""Integration tests for the DuckDB result sink and JSON importer."""

from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from rtp_sampler.errors import SinkError
from rtp_sampler.models import OutcomeRecord, SelectionResult
from rtp_sampler.persistence import DuckDBResultSink, JsonFileSink, import_json_results

pytestmark = pytest.mark.integration


def _result(offset: int = 0) -> SelectionResult:
    records = tuple(
        OutcomeRecord(id=offset + i, total_bet=1.0, actual_win=float(i % 2), payload={"i": i})
        for i in range(1, 5)
    )
    return SelectionResult(records=records, total_bet=4.0, tier_counts={}, variant="baseline")


class TestDuckDBResultSink:
    """Test row layout and concurrent-safe inserts."""

    def test_write_rows(self, tmp_path: Path) -> None:
        db = tmp_path / "out" / "results.duckdb"
        with DuckDBResultSink(db, run_id="run-1") as sink:
            sink.write(_result(), level_id=4, repetition=2)
            sink.write(_result(10), level_id=6, repetition=1)
            assert sink.count() == 8
            assert sink.count(level_id=4) == 4

        conn = duckdb.connect(str(db), read_only=True)
        try:
            rows = conn.execute(
                "SELECT run_id, rtp_level, sr_number, sr_id, win, detail "
                "FROM game_results WHERE rtp_level = 4 ORDER BY sr_id"
            ).fetchall()
        finally:
            conn.close()
        assert [row[3] for row in rows] == [1, 2, 3, 4]
        assert rows[0][:3] == ("run-1", 4, 2)
        assert rows[0][4] == 1.0
        assert rows[0][5] == '{"i": 1}'

    def test_closed_connection_raises_sink_error(self, tmp_path: Path) -> None:
        conn = duckdb.connect(str(tmp_path / "results.duckdb"))
        sink = DuckDBResultSink(conn)
        conn.close()
        with pytest.raises(SinkError):
            sink.write(_result(), 4, 1)


class TestImportJsonResults:
    def test_import(self, tmp_path: Path) -> None:
        json_sink = JsonFileSink(tmp_path / "json", 101)
        json_sink.write(_result(), 4, 1)
        json_sink.write(_result(), 4, 2)
        paths = sorted(json_sink.directory.glob("GameResultData_*.json"))
        with DuckDBResultSink(tmp_path / "results.duckdb") as sink:
            assert import_json_results(paths, sink) == 8
            assert sink.count(level_id=4) == 8
