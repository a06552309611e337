"""Policy-band validation of achieved RTP."""

from __future__ import annotations

from dataclasses import dataclass
from typing import cast

from rtp_sampler.config.levels import PolicyBand, PolicyBandTable
from rtp_sampler.errors import DeviationError

# Absolute slack for float rounding when comparing ratios.
RATIO_EPSILON = 1e-9


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a band check.

    Attributes:
        is_valid: Whether the achieved ratio is inside the band.
        band: Band the level was checked against.
        bound: ``"lower"`` or ``"upper"`` when invalid, else None.
        bound_value: Ratio of the violated bound when invalid.
    """

    is_valid: bool
    band: PolicyBand
    bound: str | None = None
    bound_value: float | None = None


class RtpValidator:
    """Checks ``target <= achieved <= target + band.upper_slack``.

    Validation never adjusts a selection; correcting the total is the
    selection engine's job.

    Example:
        >>> validator = RtpValidator()
        >>> validator.validate(4, 0.8, 0.803)
        >>> validator.check(4, 0.8, 0.81).bound
        'upper'
    """

    def __init__(self, bands: PolicyBandTable | None = None) -> None:
        self.bands = bands or PolicyBandTable.default()

    def check(
        self, level_id: int, target_ratio: float, achieved_ratio: float
    ) -> ValidationResult:
        band = self.bands.band_for(level_id)
        lower = band.min_ratio(target_ratio)
        upper = band.max_ratio(target_ratio)
        if achieved_ratio < lower - RATIO_EPSILON:
            return ValidationResult(False, band, "lower", lower)
        if achieved_ratio > upper + RATIO_EPSILON:
            return ValidationResult(False, band, "upper", upper)
        return ValidationResult(True, band)

    def validate(self, level_id: int, target_ratio: float, achieved_ratio: float) -> None:
        """Raise ``DeviationError`` if the achieved ratio is outside the band."""
        result = self.check(level_id, target_ratio, achieved_ratio)
        if not result.is_valid:
            raise DeviationError(
                level_id=level_id,
                target_ratio=target_ratio,
                achieved_ratio=achieved_ratio,
                bound=cast(str, result.bound),
                bound_value=cast(float, result.bound_value),
            )
