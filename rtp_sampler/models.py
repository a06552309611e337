"""Core data types shared by the engine, orchestrator and persistence layers.

All records are immutable frozen dataclasses. A run loads the record pools
once and every concurrent trial reads them without locking.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rtp_sampler.engine.candidates import CandidateIndex
    from rtp_sampler.persistence.protocols import CandidateLookup


class PrizeTier(str, Enum):
    """Rarity classification of an outcome record."""

    NONE = "none"
    BIG = "big"
    MEGA = "mega"
    SUPER_MEGA = "super_mega"

    @classmethod
    def from_code(cls, code: int | None) -> PrizeTier:
        """Map the stored ``gwt`` code to a tier.

        Codes 2, 3 and 4 are big, mega and super mega. Anything else is none.
        """
        return _TIER_CODES.get(code or 0, cls.NONE)

    @property
    def code(self) -> int:
        """Stored ``gwt`` code for this tier."""
        for code, tier in _TIER_CODES.items():
            if tier is self:
                return code
        return 1

    @property
    def is_rare(self) -> bool:
        return self is not PrizeTier.NONE


_TIER_CODES: dict[int, PrizeTier] = {
    2: PrizeTier.BIG,
    3: PrizeTier.MEGA,
    4: PrizeTier.SUPER_MEGA,
}


@dataclass(frozen=True)
class OutcomeRecord:
    """One historical game outcome.

    Attributes:
        id: Unique, stable record identifier.
        total_bet: Stake of the original spin.
        actual_win: Payout (>= 0).
        prize_tier: Rarity tier, capped per trial by a quota.
        is_special_play: Whether the outcome came from a special play state.
        purchase_mode: Feature-buy tag (``fb``).
        payload: Opaque game detail, carried through unchanged.
        created_at: Optional source timestamp, carried through unchanged.
        updated_at: Optional source timestamp, carried through unchanged.
    """

    id: int
    total_bet: float
    actual_win: float
    prize_tier: PrizeTier = PrizeTier.NONE
    is_special_play: bool = False
    purchase_mode: int = 0
    payload: Any = None
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        if self.actual_win < 0:
            msg = f"actual_win must be >= 0, got {self.actual_win} (id={self.id})"
            raise ValueError(msg)

    @property
    def multiplier(self) -> float:
        """Payout as a multiple of the stake."""
        if self.total_bet <= 0:
            return 0.0
        return self.actual_win / self.total_bet

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the short field names of the stored format."""
        return {
            "id": self.id,
            "tb": self.total_bet,
            "aw": self.actual_win,
            "gwt": self.prize_tier.code,
            "sp": self.is_special_play,
            "fb": self.purchase_mode,
            "gd": self.payload,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OutcomeRecord:
        """Build a record from the stored short-key format."""
        return cls(
            id=int(data["id"]),
            total_bet=float(data.get("tb") or 0),
            actual_win=float(data.get("aw") or 0),
            prize_tier=PrizeTier.from_code(data.get("gwt")),
            is_special_play=bool(data.get("sp") or False),
            purchase_mode=int(data.get("fb") or 0),
            payload=data.get("gd"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass(frozen=True)
class LevelSpec:
    """A configured RTP level.

    Attributes:
        level_id: Business code of the level.
        target_ratio: Target RTP. May exceed 1.0 for high-payout levels.
    """

    level_id: int
    target_ratio: float

    def __post_init__(self) -> None:
        if self.target_ratio <= 0:
            msg = f"target_ratio must be positive, got {self.target_ratio}"
            raise ValueError(msg)


@dataclass(frozen=True)
class Quota:
    """Per-trial record count and rare-tier caps."""

    target_count: int
    big_cap: int
    mega_cap: int
    super_mega_cap: int

    def cap_for(self, tier: PrizeTier) -> int | None:
        """Return the cap for a tier, or None when the tier is unlimited."""
        if tier is PrizeTier.BIG:
            return self.big_cap
        if tier is PrizeTier.MEGA:
            return self.mega_cap
        if tier is PrizeTier.SUPER_MEGA:
            return self.super_mega_cap
        return None


@dataclass(frozen=True)
class SelectionTarget:
    """Win amounts a trial must land between.

    Example:
        >>> target = SelectionTarget(total_bet=5.0, target_ratio=0.8, upper_slack=0.005)
        >>> target.target_win, round(target.upper_win, 6)
        (4.0, 4.025)
    """

    total_bet: float
    target_ratio: float
    upper_slack: float

    @property
    def target_win(self) -> float:
        return self.total_bet * self.target_ratio

    @property
    def upper_win(self) -> float:
        return self.total_bet * (self.target_ratio + self.upper_slack)


@dataclass(frozen=True)
class SelectionResult:
    """Immutable output of one selection.

    ``total_win`` is always recomputed from ``records`` with ``math.fsum`` so
    ``achieved_ratio`` never drifts from the records it describes.
    """

    records: tuple[OutcomeRecord, ...]
    total_bet: float
    tier_counts: Mapping[PrizeTier, int]
    variant: str
    correction_swaps: int = 0
    padding_repeats: int = 0
    total_win: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tier_counts", MappingProxyType(dict(self.tier_counts)))
        object.__setattr__(
            self, "total_win", math.fsum(r.actual_win for r in self.records)
        )

    @property
    def achieved_ratio(self) -> float:
        if self.total_bet <= 0:
            return 0.0
        return self.total_win / self.total_bet

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class RecordPool:
    """Read-only partition of outcome records for one run.

    Attributes:
        win: Records that paid out (not necessarily above stake).
        profit: Records that paid out above stake.
        no_win: Zero-payout records used for padding.
        lookup: Nearest-value query used by the near-exact and fill phases.
            Defaults to an in-memory index over ``win`` and ``profit``.
    """

    win: tuple[OutcomeRecord, ...]
    profit: tuple[OutcomeRecord, ...] = ()
    no_win: tuple[OutcomeRecord, ...] = ()
    lookup: CandidateLookup | None = None
    index: CandidateIndex = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        from rtp_sampler.engine.candidates import CandidateIndex

        object.__setattr__(self, "win", tuple(self.win))
        object.__setattr__(self, "profit", tuple(self.profit))
        object.__setattr__(self, "no_win", tuple(self.no_win))
        object.__setattr__(self, "index", CandidateIndex(self.win + self.profit))
        if self.lookup is None:
            object.__setattr__(self, "lookup", self.index)

    @classmethod
    def from_records(cls, records: Iterable[OutcomeRecord]) -> RecordPool:
        """Partition an unsorted record collection into the three pools."""
        win: list[OutcomeRecord] = []
        profit: list[OutcomeRecord] = []
        no_win: list[OutcomeRecord] = []
        for record in records:
            if record.actual_win == 0:
                no_win.append(record)
                continue
            win.append(record)
            if record.actual_win > record.total_bet:
                profit.append(record)
        return cls(win=tuple(win), profit=tuple(profit), no_win=tuple(no_win))

    @property
    def size(self) -> int:
        return len({r.id for r in self.win + self.profit + self.no_win})
