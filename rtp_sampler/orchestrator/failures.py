"""Thread-safe collection of per-trial failures."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import TypedDict


class FailureSummary(TypedDict):
    """Batch failure report.

    ``details`` holds at most the requested number of lines; ``omitted``
    counts the rest.
    """

    total_trials: int
    total_failures: int
    failures_by_level: dict[int, int]
    details: list[str]
    omitted: int


@dataclass(frozen=True)
class TrialFailure:
    level_id: int
    repetition: int
    error_type: str
    message: str

    def describe(self) -> str:
        return f"level {self.level_id} #{self.repetition}: {self.error_type}: {self.message}"


class FailureAggregator:
    """Collects failures reported concurrently by trials.

    Purely observational: nothing here feeds back into selection.

    Example:
        >>> aggregator = FailureAggregator()
        >>> aggregator.record(4, 1, ValueError("boom"))
        >>> aggregator.summary(total_trials=10)["failures_by_level"]
        {4: 1}
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._failures: list[TrialFailure] = []

    def record(self, level_id: int, repetition: int, error: BaseException) -> None:
        failure = TrialFailure(
            level_id=level_id,
            repetition=repetition,
            error_type=type(error).__name__,
            message=str(error),
        )
        with self._lock:
            self._failures.append(failure)

    @property
    def failures(self) -> list[TrialFailure]:
        with self._lock:
            return list(self._failures)

    def __len__(self) -> int:
        with self._lock:
            return len(self._failures)

    def summary(self, total_trials: int, detail_limit: int = 10) -> FailureSummary:
        """Summarize failures grouped by level.

        Args:
            total_trials: Number of trials the batch ran.
            detail_limit: Maximum number of detail lines.

        Returns:
            FailureSummary with details ordered by level then repetition.
        """
        failures = sorted(self.failures, key=lambda f: (f.level_id, f.repetition))
        by_level = Counter(f.level_id for f in failures)
        details = [f.describe() for f in failures]
        shown = details[: max(detail_limit, 0)]
        return FailureSummary(
            total_trials=total_trials,
            total_failures=len(failures),
            failures_by_level=dict(sorted(by_level.items())),
            details=shown,
            omitted=len(details) - len(shown),
        )
