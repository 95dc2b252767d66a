"""
Error taxonomy for the recording service.

Only ``QueueFullError`` reaches callers at submission time. Strategy errors
are raised by executors and absorbed by the fallback pipeline; artifact
errors surface at retrieval time.
"""

from __future__ import annotations


class RecorderError(Exception):
    """Base class for every error raised by the recorder core."""


class QueueFullError(RecorderError):
    """Admission rejected: the waiting queue is at its maximum depth."""

    def __init__(self, depth: int):
        super().__init__(f"Queue is full ({depth} jobs waiting). Try again later.")
        self.depth = depth


class JobNotFoundError(RecorderError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(RecorderError):
    """A job was asked to move backwards (or sideways) in its lifecycle."""


# ── Strategy errors ─────────────────────────────────────────────────

class StrategyError(RecorderError):
    """Raised by a strategy executor to classify why it could not produce an artifact."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RetryableStrategyError(StrategyError):
    """Transient failure (rate limiting, network fault); the same strategy may succeed later."""


class TerminalJobError(StrategyError):
    """The input itself can never be processed (private, removed, blocked by policy)."""


class TerminalStrategyError(StrategyError):
    """This strategy cannot handle the input, but another one might."""


# ── Retrieval errors ────────────────────────────────────────────────

class ArtifactError(RecorderError):
    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class ArtifactNotReady(ArtifactError):
    def __init__(self, job_id: str):
        super().__init__(job_id, f"Artifact for {job_id} is not ready yet")


class ArtifactNotFound(ArtifactError):
    def __init__(self, job_id: str):
        super().__init__(job_id, f"No artifact available for {job_id}")
