"""RTP-constrained selection engine."""

from rtp_sampler.engine.builder import SelectionBuilder
from rtp_sampler.engine.candidates import CandidateIndex
from rtp_sampler.engine.quota import TierRatios, compute_quota
from rtp_sampler.engine.seeds import derive_trial_seed, generate_run_id, make_rng
from rtp_sampler.engine.strategies import (
    BaselineStrategy,
    DynamicRatioStrategy,
    HighRtpStrategy,
    SelectionParams,
    SelectionStrategy,
    Stage,
    StagedStrategy,
    build_strategy,
    select,
)
from rtp_sampler.engine.validator import RtpValidator, ValidationResult

__all__ = [
    "BaselineStrategy",
    "CandidateIndex",
    "DynamicRatioStrategy",
    "HighRtpStrategy",
    "RtpValidator",
    "SelectionBuilder",
    "SelectionParams",
    "SelectionStrategy",
    "Stage",
    "StagedStrategy",
    "TierRatios",
    "ValidationResult",
    "build_strategy",
    "compute_quota",
    "derive_trial_seed",
    "generate_run_id",
    "make_rng",
    "select",
]
