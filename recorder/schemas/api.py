"""
External API contract for the HTTP boundary.

Field aliases keep the camelCase keys the browser client already sends
and expects; internal code uses the snake_case names.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from recorder.schemas.job import ArtifactRef, Job, JobError, JobStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecordRequest(_CamelModel):
    youtube_url: str = Field(alias="youtubeUrl")


class RecordResponse(_CamelModel):
    success: bool = True
    recording_id: str = Field(alias="recordingId")
    status_url: str = Field(alias="statusUrl")
    position: int | None = None


class ArtifactInfo(_CamelModel):
    filename: str
    media_type: str = Field(alias="mediaType")
    file_size_kb: int = Field(alias="fileSize")
    strategy: str
    degraded: bool = False

    @classmethod
    def from_ref(cls, ref: ArtifactRef) -> "ArtifactInfo":
        return cls(
            filename=ref.filename,
            media_type=ref.media_type,
            file_size_kb=ref.size_kb,
            strategy=ref.strategy,
            degraded=ref.degraded,
        )


class StatusResponse(_CamelModel):
    id: str
    youtube_url: str = Field(alias="youtubeUrl")
    status: JobStatus
    position: int | None = None
    message: str = ""
    video_title: str | None = Field(default=None, alias="videoTitle")
    queued_at: datetime = Field(alias="queuedAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")
    failed_at: datetime | None = Field(default=None, alias="failedAt")
    result: ArtifactInfo | None = None
    error: JobError | None = None
    download_url: str | None = Field(default=None, alias="downloadUrl")

    @classmethod
    def from_job(cls, job: Job) -> "StatusResponse":
        return cls(
            id=job.id,
            youtube_url=job.input.source_url,
            status=job.status,
            position=job.position,
            message=job.message,
            video_title=job.title,
            queued_at=job.queued_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            failed_at=job.failed_at,
            result=ArtifactInfo.from_ref(job.result) if job.result else None,
            error=job.error,
            download_url=f"/download/{job.id}" if job.status is JobStatus.COMPLETED else None,
        )
