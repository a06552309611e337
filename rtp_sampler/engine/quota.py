"""Per-trial quota calculation."""

from __future__ import annotations

import math
from dataclasses import dataclass

from rtp_sampler.models import Quota


@dataclass(frozen=True)
class TierRatios:
    """Share of a trial's records each rare tier may occupy."""

    big: float = 0.0
    mega: float = 0.0
    super_mega: float = 0.0

    def __post_init__(self) -> None:
        for name in ("big", "mega", "super_mega"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} ratio must be within [0, 1], got {value}")


def compute_quota(target_count: int, ratios: TierRatios) -> Quota:
    """Derive rare-tier caps for a trial.

    Each cap is ``floor(ratio * target_count)``. A zero ratio gives a zero
    cap, which keeps the tier out of the selection entirely.

    Args:
        target_count: Number of records the trial must produce.
        ratios: Tier shares.

    Returns:
        Quota for the trial.

    Raises:
        ValueError: If target_count is not positive.

    Example:
        >>> compute_quota(1000, TierRatios(big=0.0025, mega=0.001, super_mega=0.0))
        Quota(target_count=1000, big_cap=2, mega_cap=1, super_mega_cap=0)
    """
    if target_count <= 0:
        raise ValueError(f"target_count must be positive, got {target_count}")
    return Quota(
        target_count=target_count,
        big_cap=math.floor(ratios.big * target_count),
        mega_cap=math.floor(ratios.mega * target_count),
        super_mega_cap=math.floor(ratios.super_mega * target_count),
    )
