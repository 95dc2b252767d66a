"""
Strategy configuration and the tagged outcomes exchanged between
executors, the fallback pipeline and the queue manager.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from recorder.schemas.job import ArtifactRef, JobError


class StrategyDescriptor(BaseModel):
    """Immutable per-strategy policy, shared read-only across jobs."""
    model_config = ConfigDict(frozen=True)

    name: str
    ordinal: int
    max_retries: int = Field(default=0, ge=0)
    retry_backoff: float = Field(default=0.0, ge=0)  # seconds, base of the exponential delay
    timeout: float = Field(default=60.0, gt=0)  # seconds


class PipelineAttempt(BaseModel):
    """Cursor over the strategy list for one pipeline run."""
    strategy_index: int = 0
    retry_count: int = 0
    last_error: str | None = None


# ── Executor outcomes ───────────────────────────────────────────────

class Success(BaseModel):
    kind: Literal["success"] = "success"
    artifact: ArtifactRef


class RetryableFailure(BaseModel):
    kind: Literal["retryable"] = "retryable"
    reason: str


class TerminalJobFailure(BaseModel):
    kind: Literal["terminal_job"] = "terminal_job"
    reason: str


class TerminalStrategyFailure(BaseModel):
    kind: Literal["terminal_strategy"] = "terminal_strategy"
    reason: str


StrategyOutcome = Union[Success, RetryableFailure, TerminalJobFailure, TerminalStrategyFailure]


# ── Pipeline outcomes ───────────────────────────────────────────────

class PipelineSuccess(BaseModel):
    kind: Literal["success"] = "success"
    artifact: ArtifactRef
    strategy: str
    degraded: bool = False


class PipelineFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    error: JobError


PipelineOutcome = Union[PipelineSuccess, PipelineFailure]
