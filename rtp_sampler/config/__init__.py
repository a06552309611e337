"""Configuration module for the RTP sampler."""

from pydantic import ValidationError

from .levels import (
    PURCHASE_LEVELS,
    STANDARD_LEVELS,
    PolicyBand,
    PolicyBandTable,
    StrategyGroups,
    StrategyVariant,
    build_levels,
    classify_level,
)
from .loader import load_config
from .schemas import GeneratorConfig, PlayMode, StageConfig

__all__ = [
    "GeneratorConfig",
    "PURCHASE_LEVELS",
    "PlayMode",
    "PolicyBand",
    "PolicyBandTable",
    "STANDARD_LEVELS",
    "StageConfig",
    "StrategyGroups",
    "StrategyVariant",
    "ValidationError",
    "build_levels",
    "classify_level",
    "load_config",
]
