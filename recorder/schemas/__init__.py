"""
Pydantic schemas for every boundary of the recorder core.
Each module covers one concern: the job record, strategy policy and
outcomes, and the HTTP contract.
"""

from recorder.schemas.job import (
    ArtifactRef,
    Job,
    JobError,
    JobEvent,
    JobInput,
    JobStatus,
)
from recorder.schemas.strategy import (
    PipelineAttempt,
    PipelineFailure,
    PipelineOutcome,
    PipelineSuccess,
    RetryableFailure,
    StrategyDescriptor,
    StrategyOutcome,
    Success,
    TerminalJobFailure,
    TerminalStrategyFailure,
)

__all__ = [
    # Job
    "ArtifactRef",
    "Job",
    "JobError",
    "JobEvent",
    "JobInput",
    "JobStatus",
    # Strategy
    "PipelineAttempt",
    "PipelineFailure",
    "PipelineOutcome",
    "PipelineSuccess",
    "RetryableFailure",
    "StrategyDescriptor",
    "StrategyOutcome",
    "Success",
    "TerminalJobFailure",
    "TerminalStrategyFailure",
]
