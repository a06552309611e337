"""Level tables, policy bands and strategy classification.

Everything here is plain data plus pure lookup functions. Adding a level or
giving one level a bespoke band is a table edit, never a new branch.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from rtp_sampler.models import LevelSpec

# Target RTP per level for standard play.
STANDARD_LEVELS: dict[int, float] = {
    1: 0.6,
    2: 0.7,
    3: 0.75,
    4: 0.8,
    5: 0.85,
    6: 0.9,
    7: 0.91,
    8: 0.92,
    9: 0.93,
    10: 0.94,
    11: 0.95,
    12: 0.96,
    13: 0.97,
    14: 1.5,
    15: 2.0,
    20: 0.2,
    30: 0.3,
    40: 0.4,
    50: 0.5,
    120: 1.2,
    150: 1.5,
    200: 2.0,
    300: 3.0,
    500: 5.0,
}

# Target RTP per level for purchase (feature-buy) play.
PURCHASE_LEVELS: dict[int, float] = {
    1: 0.6,
    2: 0.7,
    3: 0.75,
    **{level: 0.8 for level in range(4, 16)},
    20: 0.2,
    30: 0.3,
    40: 0.4,
    50: 0.5,
    120: 1.2,
    150: 1.5,
    200: 2.0,
    300: 3.0,
    500: 5.0,
}

STRICT_LEVELS: tuple[int, ...] = (*range(1, 14), 20, 30, 40, 50)


class StrategyVariant(str, Enum):
    """Closed set of selection strategies."""

    BASELINE = "baseline"
    STAGED = "staged"
    DYNAMIC_RATIO = "dynamic_ratio"
    HIGH_RTP = "high_rtp"


DEFAULT_STRATEGY_GROUPS: dict[StrategyVariant, tuple[int, ...]] = {
    StrategyVariant.DYNAMIC_RATIO: (*range(1, 15), 20, 30, 40, 50, 120),
    StrategyVariant.BASELINE: (150,),
    StrategyVariant.STAGED: (15, 200, 300, 500),
}

DEFAULT_HIGH_RTP_THRESHOLD = 2.0


@dataclass(frozen=True)
class PolicyBand:
    """Acceptable envelope around a target ratio.

    No band ever allows an achieved ratio below the target.
    """

    name: str
    upper_slack: float

    def min_ratio(self, target_ratio: float) -> float:
        return target_ratio

    def max_ratio(self, target_ratio: float) -> float:
        return target_ratio + self.upper_slack


STRICT_BAND = PolicyBand("strict", 0.005)
LOOSE_BAND = PolicyBand("loose", 0.5)


@dataclass(frozen=True)
class PolicyBandTable:
    """Per-level band assignments with a default.

    Example:
        >>> table = PolicyBandTable.default()
        >>> table.band_for(4).name, table.band_for(200).name
        ('strict', 'loose')
    """

    bands: Mapping[str, PolicyBand]
    assignments: Mapping[int, str] = field(default_factory=dict)
    default_band: str = "loose"

    def __post_init__(self) -> None:
        unknown = {name for name in self.assignments.values() if name not in self.bands}
        if self.default_band not in self.bands:
            unknown.add(self.default_band)
        if unknown:
            msg = f"Unknown policy band(s): {', '.join(sorted(unknown))}"
            raise ValueError(msg)

    @classmethod
    def default(cls) -> PolicyBandTable:
        return cls(
            bands={STRICT_BAND.name: STRICT_BAND, LOOSE_BAND.name: LOOSE_BAND},
            assignments={level: STRICT_BAND.name for level in STRICT_LEVELS},
            default_band=LOOSE_BAND.name,
        )

    def band_for(self, level_id: int) -> PolicyBand:
        return self.bands[self.assignments.get(level_id, self.default_band)]


@dataclass(frozen=True)
class StrategyGroups:
    """Assignment of levels to strategy variants."""

    groups: Mapping[StrategyVariant, tuple[int, ...]] = field(
        default_factory=lambda: dict(DEFAULT_STRATEGY_GROUPS)
    )
    high_rtp_threshold: float = DEFAULT_HIGH_RTP_THRESHOLD
    fallback: StrategyVariant = StrategyVariant.DYNAMIC_RATIO

    def variant_of(self, level_id: int) -> StrategyVariant:
        for variant, levels in self.groups.items():
            if level_id in levels:
                return variant
        return self.fallback


def classify_level(
    level: LevelSpec, groups: StrategyGroups | None = None
) -> StrategyVariant:
    """Pick the strategy variant for a level.

    Staged levels whose target reaches the high-RTP threshold switch to the
    high-RTP overflow strategy.

    Args:
        level: Level to classify.
        groups: Level-to-variant table. Defaults to the built-in groups.

    Returns:
        The variant that should build this level's selections.
    """
    groups = groups or StrategyGroups()
    variant = groups.variant_of(level.level_id)
    if variant is StrategyVariant.STAGED and level.target_ratio >= groups.high_rtp_threshold:
        return StrategyVariant.HIGH_RTP
    return variant


def build_levels(
    table: Mapping[int, float], only: Iterable[int] | None = None
) -> list[LevelSpec]:
    """Turn a level table into sorted ``LevelSpec`` objects.

    Raises:
        KeyError: If ``only`` names a level missing from ``table``.
    """
    if only is None:
        selected = sorted(table)
    else:
        selected = list(dict.fromkeys(only))
        missing = [level for level in selected if level not in table]
        if missing:
            raise KeyError(f"Unknown RTP level(s): {missing}")
    return [LevelSpec(level_id=level, target_ratio=table[level]) for level in selected]
