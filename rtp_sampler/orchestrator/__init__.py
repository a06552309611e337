"""Concurrent trial orchestration."""

from rtp_sampler.orchestrator.failures import FailureAggregator, FailureSummary, TrialFailure
from rtp_sampler.orchestrator.log_channel import LogChannel, TrialLog
from rtp_sampler.orchestrator.runner import BatchReport, TrialOrchestrator
from rtp_sampler.orchestrator.trial import (
    TrialContext,
    TrialOutcome,
    TrialPlan,
    TrialState,
    create_context,
    run_trial,
)

__all__ = [
    "BatchReport",
    "FailureAggregator",
    "FailureSummary",
    "LogChannel",
    "TrialContext",
    "TrialFailure",
    "TrialLog",
    "TrialOrchestrator",
    "TrialOutcome",
    "TrialPlan",
    "TrialState",
    "create_context",
    "run_trial",
]
