"""Serialized console output for concurrent trials.

Each trial writes into its own ``TrialLog`` buffer. The orchestrator's
``LogChannel`` publishes a whole buffer under one lock, so the lines of two
trials never interleave.
"""

from __future__ import annotations

import threading

from rich.console import Console


class TrialLog:
    """Buffered rich-markup lines of one trial."""

    def __init__(self, level_id: int, repetition: int) -> None:
        self.level_id = level_id
        self.repetition = repetition
        self._lines: list[tuple[str, str]] = []

    @property
    def header(self) -> str:
        return f"level {self.level_id} #{self.repetition}"

    @property
    def lines(self) -> list[tuple[str, str]]:
        """``(kind, text)`` pairs in the order they were written."""
        return list(self._lines)

    def info(self, message: str) -> None:
        self._lines.append(("info", message))

    def success(self, message: str) -> None:
        self._lines.append(("success", message))

    def warning(self, message: str) -> None:
        self._lines.append(("warning", message))

    def error(self, message: str) -> None:
        self._lines.append(("error", message))


_MARKERS = {
    "info": "[blue]ℹ[/blue]",
    "success": "[green]✓[/green]",
    "warning": "[yellow]⚠[/yellow]",
    "error": "[red]✗[/red]",
}


class LogChannel:
    """Lock-guarded console shared by all trials of a run.

    Args:
        console: Target console. Defaults to a stderr console.
        quiet: Suppress info and success lines. Warnings and errors are
            always shown.
    """

    def __init__(self, console: Console | None = None, quiet: bool = False) -> None:
        self.console = console or Console(stderr=True)
        self.quiet = quiet
        self._lock = threading.Lock()

    def _render(self, kind: str, text: str, prefix: str = "") -> None:
        if self.quiet and kind in ("info", "success"):
            return
        style = "bold red" if kind == "error" else None
        self.console.print(f"{_MARKERS[kind]} {prefix}{text}", style=style)

    def publish(self, log: TrialLog) -> None:
        """Print every line of a trial as one uninterrupted block."""
        with self._lock:
            for kind, text in log.lines:
                self._render(kind, text, prefix=f"[dim]{log.header}[/dim] ")

    def info(self, message: str) -> None:
        with self._lock:
            self._render("info", message)

    def success(self, message: str) -> None:
        with self._lock:
            self._render("success", message)

    def warning(self, message: str) -> None:
        with self._lock:
            self._render("warning", message)

    def error(self, message: str) -> None:
        with self._lock:
            self._render("error", message)
