"""Data movement commands: load historical records, import generated results."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import duckdb
import typer

from rtp_sampler.cli.output import log_error, log_info, log_success
from rtp_sampler.persistence import (
    DuckDBResultSink,
    InMemoryPoolSource,
    import_json_results,
    write_record_table,
)


def _result_files(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(path.rglob("GameResultData_*.json")))
        elif path.exists():
            files.append(path)
        else:
            log_error(f"Path not found: {path}")
            raise typer.Exit(1)
    return files


def import_results(
    paths: Annotated[
        list[Path],
        typer.Argument(help="Result files or directories containing GameResultData_*.json"),
    ],
    database: Annotated[
        Path,
        typer.Option("--database", "-d", help="Destination DuckDB file"),
    ],
    table: Annotated[
        str,
        typer.Option("--table", "-t", help="Destination table"),
    ] = "game_results",
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress logs"),
    ] = False,
) -> None:
    """Import generated JSON result files into a DuckDB result table."""
    files = _result_files(paths)
    if not files:
        log_error("No result files found")
        raise typer.Exit(1)

    log_info(f"Importing {len(files)} files into {database}:{table}", quiet)
    try:
        with DuckDBResultSink(database, table=table) as sink:
            rows = import_json_results(files, sink)
    except (ValueError, KeyError) as e:
        log_error(f"Import failed: {e}")
        raise typer.Exit(1) from None
    log_success(f"Imported {rows} rows from {len(files)} files", quiet)


def load_records(
    source_file: Annotated[
        Path,
        typer.Argument(help="Outcome records (.parquet, .csv or .json)"),
    ],
    database: Annotated[
        Path,
        typer.Option("--database", "-d", help="Destination DuckDB file"),
    ],
    table: Annotated[
        str,
        typer.Option("--table", "-t", help="Destination table, usually prefix + game id"),
    ],
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress logs"),
    ] = False,
) -> None:
    """Load historical outcome records into the DuckDB record table."""
    try:
        source = InMemoryPoolSource.from_file(source_file)
    except (FileNotFoundError, ValueError) as e:
        log_error(str(e))
        raise typer.Exit(1) from None

    database.parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(str(database))
    try:
        written = write_record_table(conn, table, source.records)
    except duckdb.Error as e:
        log_error(f"Load failed: {e}")
        raise typer.Exit(1) from None
    finally:
        conn.close()
    log_success(f"Loaded {written} records into {database}:{table}", quiet)
