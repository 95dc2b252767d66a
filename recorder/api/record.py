"""
Thin API routes for submission, status and download.

No business logic: validates the request, calls the queue manager and
maps core errors onto HTTP status codes.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse

from recorder.core.errors import ArtifactNotFound, ArtifactNotReady, JobNotFoundError, QueueFullError
from recorder.queue.manager import JobQueueManager
from recorder.schemas.api import RecordRequest, RecordResponse, StatusResponse
from recorder.schemas.job import JobInput
from recorder.utils.logging import get_logger
from recorder.utils.youtube import extract_video_id, is_youtube_url

logger = get_logger("recorder.api.record")

router = APIRouter(tags=["Recording"])


def get_manager(request: Request) -> JobQueueManager:
    return request.app.state.manager


@router.post("/record-beat", response_model=RecordResponse)
async def record_beat(
    body: RecordRequest,
    manager: JobQueueManager = Depends(get_manager),
):
    url = body.youtube_url.strip()
    if not is_youtube_url(url):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid YouTube URL")

    try:
        job_id = await manager.enqueue(JobInput(source_url=url, video_id=extract_video_id(url)))
    except QueueFullError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    job = manager.get_status(job_id)
    return RecordResponse(
        recording_id=job_id,
        status_url=f"/status/{job_id}",
        position=job.position,
    )


@router.get("/status/{job_id}", response_model=StatusResponse)
async def recording_status(
    job_id: str,
    manager: JobQueueManager = Depends(get_manager),
):
    try:
        job = manager.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recording not found")
    return StatusResponse.from_job(job)


@router.get("/download/{job_id}")
async def download_recording(
    job_id: str,
    manager: JobQueueManager = Depends(get_manager),
):
    """
    Stream the finished file once.

    The artifact is claimed by this call; a second download gets 404. With
    a zero claimed TTL the file is deleted as soon as the response is sent,
    otherwise the sweeper deletes it after the grace window.
    """
    try:
        artifact = await manager.retrieve(job_id)
    except ArtifactNotReady:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Recording is not finished yet")
    except ArtifactNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not available")

    if not Path(artifact.path).is_file():
        logger.error("[DOWNLOAD] Artifact for %s is missing on disk: %s", job_id, artifact.path)
        await manager.release(job_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not available")

    background = BackgroundTasks()
    if manager.retention.claimed_ttl.total_seconds() <= 0:
        background.add_task(manager.release, job_id)

    logger.info("[DOWNLOAD] Sending %s for %s", artifact.filename, job_id)
    return FileResponse(
        artifact.path,
        media_type=artifact.media_type,
        filename=artifact.filename,
        background=background,
    )
