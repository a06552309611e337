"""Trial error taxonomy.

Every error a single trial can raise derives from ``TrialError``. The
orchestrator recovers all of them at the trial boundary, so one failing
trial never stops its siblings.
"""

from __future__ import annotations


class TrialError(Exception):
    """Base class for errors that fail a single trial."""


class PoolExhaustionError(TrialError):
    """A pool the strategy needs is empty."""

    def __init__(self, pool_name: str, needed: int = 0) -> None:
        self.pool_name = pool_name
        self.needed = needed
        detail = f" ({needed} records still needed)" if needed else ""
        super().__init__(f"{pool_name} pool is exhausted{detail}")


class QuantityMismatchError(TrialError):
    """Final selection length differs from the target count."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"selected {actual} records, expected {expected}")


class DeviationError(TrialError):
    """Achieved ratio fell outside the level's policy band.

    Attributes:
        level_id: Level that was validated.
        target_ratio: Configured target RTP.
        achieved_ratio: RTP of the selection.
        bound: Which bound was violated, ``"lower"`` or ``"upper"``.
        bound_value: The ratio of the violated bound.
    """

    def __init__(
        self,
        level_id: int,
        target_ratio: float,
        achieved_ratio: float,
        bound: str,
        bound_value: float,
    ) -> None:
        self.level_id = level_id
        self.target_ratio = target_ratio
        self.achieved_ratio = achieved_ratio
        self.bound = bound
        self.bound_value = bound_value
        relation = "below" if bound == "lower" else "above"
        super().__init__(
            f"level {level_id}: achieved RTP {achieved_ratio:.6f} is {relation} "
            f"the {bound} bound {bound_value:.6f} (target {target_ratio:.6f})"
        )


class SinkError(TrialError):
    """The output sink failed to persist a selection."""
