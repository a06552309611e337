"""Output formatting utilities for the CLI.

stdout carries machine-readable JSON; stderr carries human-readable logs,
so ``rtp-sampler generate ... > summary.json`` keeps the colored progress
on the terminal.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from rich.console import Console
from rich.table import Table

from rtp_sampler.orchestrator.failures import FailureSummary

# stderr console for human logs (preserves colors when redirected)
console = Console(stderr=True)


def output_json(data: Any, indent: int | None = 2) -> None:
    """Output JSON to stdout (machine-readable).

    Args:
        data: Data to serialize as JSON
        indent: Indentation level (None for compact)
    """
    print(json.dumps(data, indent=indent), flush=True)


def log_info(message: str, quiet: bool = False) -> None:
    """Log info message to stderr.

    Args:
        message: Message to log
        quiet: If True, suppress output
    """
    if not quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def log_success(message: str, quiet: bool = False) -> None:
    """Log success message to stderr.

    Args:
        message: Message to log
        quiet: If True, suppress output
    """
    if not quiet:
        console.print(f"[green]✓[/green] {message}")


def log_error(message: str) -> None:
    """Log error message to stderr (always shown)."""
    console.print(f"[red]✗[/red] {message}", style="bold red")


def log_warning(message: str, quiet: bool = False) -> None:
    if not quiet:
        console.print(f"[yellow]⚠[/yellow] {message}")


def print_failure_summary(summary: FailureSummary, quiet: bool = False) -> None:
    """Render the batch failure summary grouped by level.

    Failures are always shown, even in quiet mode; a clean batch prints a
    single success line unless quiet.
    """
    total = summary["total_trials"]
    failed = summary["total_failures"]
    if failed == 0:
        log_success(f"All {total} trials succeeded", quiet)
        return

    table = Table(title=f"Failed trials: {failed} of {total}")
    table.add_column("Level", justify="right")
    table.add_column("Failures", justify="right")
    for level_id, count in summary["failures_by_level"].items():
        table.add_row(str(level_id), str(count))
    console.print(table)

    for line in summary["details"]:
        console.print(f"  [red]•[/red] {line}")
    if summary["omitted"]:
        console.print(f"  ... {summary['omitted']} more")


def print_levels_table(rows: Iterable[dict[str, Any]], title: str) -> None:
    """Render level, band and strategy information."""
    table = Table(title=title)
    for column in ("level", "target", "band", "max", "variant", "records", "repetitions"):
        table.add_column(column.capitalize(), justify="right" if column != "variant" else "left")
    for row in rows:
        table.add_row(
            str(row["level"]),
            f"{row['target']:g}",
            row["band"],
            f"{row['max']:g}",
            row["variant"],
            str(row["records"]),
            str(row["repetitions"]),
        )
    console.print(table)
