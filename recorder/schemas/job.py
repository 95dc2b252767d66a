"""
Job record and the artifact / error shapes attached to it.

A Job only moves forward: queued -> processing -> completed | failed.
Timestamps are stamped by ``transition()`` exactly once.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from recorder.core.errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED = {
    JobStatus.QUEUED: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobInput(BaseModel):
    """What the caller asked for. Opaque to the queue."""
    source_url: str
    video_id: str | None = None


class ArtifactRef(BaseModel):
    """Location and description of a produced file."""
    path: str
    filename: str
    media_type: str = "audio/webm"
    size_bytes: int = 0
    strategy: str = ""
    degraded: bool = False
    title: str | None = None

    @property
    def size_kb(self) -> int:
        return round(self.size_bytes / 1024)

    @classmethod
    def from_file(cls, path: Path, *, media_type: str, strategy: str = "", title: str | None = None) -> "ArtifactRef":
        return cls(
            path=str(path),
            filename=path.name,
            media_type=media_type,
            size_bytes=path.stat().st_size,
            strategy=strategy,
            title=title,
        )


class JobError(BaseModel):
    """Structured failure reason shown to callers instead of a raw exception."""
    code: str
    message: str
    strategy: str | None = None
    attempts: list[str] = Field(default_factory=list)


class Job(BaseModel):
    id: str
    input: JobInput
    status: JobStatus = JobStatus.QUEUED
    position: int | None = None
    message: str = "Waiting in queue"

    queued_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None

    result: ArtifactRef | None = None
    error: JobError | None = None
    strategy: str | None = None
    degraded: bool = False
    title: str | None = None

    def transition(self, status: JobStatus, at: datetime) -> None:
        if status not in _ALLOWED[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status is JobStatus.PROCESSING:
            self.started_at = at
            self.position = None
        elif status is JobStatus.COMPLETED:
            self.completed_at = at
        elif status is JobStatus.FAILED:
            self.failed_at = at

    @property
    def finished_at(self) -> datetime | None:
        return self.completed_at or self.failed_at


class JobEvent(BaseModel):
    """Lifecycle notification emitted by the queue manager."""
    kind: str  # enqueued | started | completed | failed | expired | released
    job_id: str
    status: JobStatus | None = None
    at: datetime = Field(default_factory=utcnow)
