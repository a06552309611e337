"""Pydantic models for the generator configuration file."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from rtp_sampler.config.levels import (
    DEFAULT_HIGH_RTP_THRESHOLD,
    DEFAULT_STRATEGY_GROUPS,
    LOOSE_BAND,
    PURCHASE_LEVELS,
    STANDARD_LEVELS,
    STRICT_BAND,
    STRICT_LEVELS,
    PolicyBand,
    PolicyBandTable,
    StrategyGroups,
    StrategyVariant,
    build_levels,
)
from rtp_sampler.models import LevelSpec


class PlayMode(str, Enum):
    """Which slice of the record table a run samples from."""

    STANDARD = "standard"
    PURCHASE = "purchase"


# ============================================================================
# Sections
# ============================================================================


class GameSection(BaseModel):
    id: int = Field(..., description="Game identifier", ge=0)
    purchase_mode: int = Field(2, description="fb tag of feature-buy records", ge=1)


class SourceSection(BaseModel):
    """Where outcome records are read from."""

    database: str = Field("records.duckdb", description="DuckDB file holding outcome tables")
    table_prefix: str = Field("game_results_", description="Table name is prefix + game id")
    max_multiplier: float = Field(
        100.0, gt=0, description="Standard-mode win records must pay below stake x this"
    )


class BetSection(BaseModel):
    cs: float = Field(..., gt=0, description="Coin size")
    ml: float = Field(..., gt=0, description="Multiplier level")
    bl: float = Field(..., gt=0, description="Bet lines")
    fb: float = Field(1.0, gt=0, description="Stake multiplier of purchase mode")

    @property
    def per_spin(self) -> float:
        return self.cs * self.ml * self.bl


class TablesSection(BaseModel):
    """Record counts and repetitions per strategy family.

    The dynamic-ratio family uses ``data_num``/``data_table_num``; every
    other family uses the ``_fb`` pair.
    """

    data_num: int = Field(10000, gt=0)
    data_table_num: int = Field(1, gt=0)
    data_num_fb: int = Field(2000, gt=0)
    data_table_num_fb: int = Field(1, gt=0)


class PrizeRatiosSection(BaseModel):
    big_prize: float = Field(0.0, ge=0, le=1)
    mega_prize: float = Field(0.0, ge=0, le=1)
    super_mega_prize: float = Field(0.0, ge=0, le=1)


class StageConfig(BaseModel):
    """One multiplier band of the staged primary fill."""

    ratio: float = Field(..., gt=0, le=1, description="Share of slots for this band")
    min_multiplier: float = Field(0.0, ge=0, description="Exclusive lower multiplier")
    max_multiplier: float | None = Field(None, description="Inclusive upper multiplier")

    @model_validator(mode="after")
    def validate_range(self) -> StageConfig:
        if self.max_multiplier is not None and self.max_multiplier <= self.min_multiplier:
            raise ValueError("max_multiplier must be greater than min_multiplier")
        return self


def _default_stages() -> list[StageConfig]:
    return [
        StageConfig(ratio=0.20, min_multiplier=0.0, max_multiplier=1.0),
        StageConfig(ratio=0.50, min_multiplier=1.0, max_multiplier=20.0),
        StageConfig(ratio=0.15, min_multiplier=20.0, max_multiplier=50.0),
        StageConfig(ratio=0.15, min_multiplier=50.0, max_multiplier=None),
    ]


class StageRatiosSection(BaseModel):
    stage1_min_ratio: float = Field(0.3, ge=0, le=1)
    stage1_max_ratio: float = Field(0.5, ge=0, le=1)
    stage3_win_top_ratio: float = Field(0.3, ge=0, le=1)
    stages: list[StageConfig] = Field(default_factory=_default_stages)

    @model_validator(mode="after")
    def validate_ratios(self) -> StageRatiosSection:
        if self.stage1_min_ratio > self.stage1_max_ratio:
            raise ValueError("stage1_min_ratio must not exceed stage1_max_ratio")
        total = sum(stage.ratio for stage in self.stages)
        if total > 1.0 + 1e-9:
            raise ValueError(f"stage ratios sum to {total:.4f}, must be at most 1")
        return self


class PolicySection(BaseModel):
    """Policy bands as data: band slack per name and per-level assignment."""

    bands: dict[str, float] = Field(
        default_factory=lambda: {
            STRICT_BAND.name: STRICT_BAND.upper_slack,
            LOOSE_BAND.name: LOOSE_BAND.upper_slack,
        }
    )
    level_bands: dict[int, str] = Field(
        default_factory=lambda: {level: STRICT_BAND.name for level in STRICT_LEVELS}
    )
    default_band: str = LOOSE_BAND.name

    @field_validator("bands")
    @classmethod
    def validate_slacks(cls, v: dict[str, float]) -> dict[str, float]:
        for name, slack in v.items():
            if slack < 0:
                raise ValueError(f"band '{name}' has negative slack {slack}")
        return v

    @model_validator(mode="after")
    def validate_references(self) -> PolicySection:
        referenced = set(self.level_bands.values()) | {self.default_band}
        unknown = sorted(referenced - set(self.bands))
        if unknown:
            raise ValueError(f"unknown policy band(s): {', '.join(unknown)}")
        return self


class StrategySection(BaseModel):
    groups: dict[StrategyVariant, list[int]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_STRATEGY_GROUPS.items()}
    )
    high_rtp_threshold: float = Field(DEFAULT_HIGH_RTP_THRESHOLD, gt=0)

    @model_validator(mode="after")
    def validate_disjoint(self) -> StrategySection:
        seen: dict[int, StrategyVariant] = {}
        for variant, levels in self.groups.items():
            for level in levels:
                if level in seen:
                    raise ValueError(
                        f"level {level} is listed under both "
                        f"'{seen[level].value}' and '{variant.value}'"
                    )
                seen[level] = variant
        return self


class LevelsSection(BaseModel):
    standard: dict[int, float] = Field(default_factory=lambda: dict(STANDARD_LEVELS))
    purchase: dict[int, float] = Field(default_factory=lambda: dict(PURCHASE_LEVELS))

    @field_validator("standard", "purchase")
    @classmethod
    def validate_positive(cls, v: dict[int, float]) -> dict[int, float]:
        for level, ratio in v.items():
            if ratio <= 0:
                raise ValueError(f"level {level} has non-positive target ratio {ratio}")
        return v


class SettingsSection(BaseModel):
    max_workers: int | None = Field(None, gt=0, description="Defaults to CPU count")
    max_correction_swaps: int = Field(500, ge=0)
    nearest_tolerance: float = Field(0.005, ge=0)
    fill_candidate_limit: int = Field(100, gt=0)
    max_top_up_passes: int = Field(3, gt=0)
    failure_detail_limit: int = Field(10, ge=0)


class OutputSection(BaseModel):
    directory: str = "output"
    format: Literal["json", "duckdb"] = "json"
    database: str = "results.duckdb"
    table: str = "game_results"


# ============================================================================
# Root
# ============================================================================


class GeneratorConfig(BaseModel):
    """Complete generator configuration.

    Example:
        >>> config = GeneratorConfig.from_yaml("config.yaml")
        >>> config.bet.per_spin
        4.0
    """

    game: GameSection
    bet: BetSection
    source: SourceSection = Field(default_factory=SourceSection)
    tables: TablesSection = Field(default_factory=TablesSection)
    prize_ratios: PrizeRatiosSection = Field(default_factory=PrizeRatiosSection)
    stage_ratios: StageRatiosSection = Field(default_factory=StageRatiosSection)
    policy: PolicySection = Field(default_factory=PolicySection)
    strategy: StrategySection = Field(default_factory=StrategySection)
    levels: LevelsSection = Field(default_factory=LevelsSection)
    settings: SettingsSection = Field(default_factory=SettingsSection)
    output: OutputSection = Field(default_factory=OutputSection)

    @classmethod
    def from_yaml(cls, path: str | Path) -> GeneratorConfig:
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Parsed GeneratorConfig instance.
        """
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)

    @property
    def source_table(self) -> str:
        return f"{self.source.table_prefix}{self.game.id}"

    def level_table(self, mode: PlayMode) -> dict[int, float]:
        if mode == PlayMode.PURCHASE:
            return dict(self.levels.purchase)
        return dict(self.levels.standard)

    def level_specs(self, mode: PlayMode, only: list[int] | None = None) -> list[LevelSpec]:
        return build_levels(self.level_table(mode), only)

    def band_table(self) -> PolicyBandTable:
        return PolicyBandTable(
            bands={name: PolicyBand(name, slack) for name, slack in self.policy.bands.items()},
            assignments=dict(self.policy.level_bands),
            default_band=self.policy.default_band,
        )

    def strategy_groups(self) -> StrategyGroups:
        return StrategyGroups(
            groups={variant: tuple(levels) for variant, levels in self.strategy.groups.items()},
            high_rtp_threshold=self.strategy.high_rtp_threshold,
        )

    def bet_multiplier(self, mode: PlayMode) -> float:
        return self.bet.fb if mode == PlayMode.PURCHASE else 1.0

    def family_plan(self, variant: StrategyVariant) -> tuple[int, int]:
        """Return ``(target_count, repetitions)`` for a strategy family."""
        if variant == StrategyVariant.DYNAMIC_RATIO:
            return self.tables.data_num, self.tables.data_table_num
        return self.tables.data_num_fb, self.tables.data_table_num_fb
