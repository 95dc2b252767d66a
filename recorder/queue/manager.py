"""
Job Queue Manager

Owns every job record and decides when each one starts. Admission is
event-chained: enqueue and every job completion re-run admission inside
the same critical section, so the pool stays saturated up to
``max_concurrent`` without a polling loop.

All state changes (enqueue, admit, finish, sweep, release) happen under a
single ``asyncio.Lock`` and never await inside it; pipeline runs happen
in their own tasks outside the lock.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from recorder.core.errors import ArtifactNotFound, JobNotFoundError, QueueFullError
from recorder.queue.pipeline import FallbackPipeline
from recorder.schemas.job import (
    ArtifactRef,
    Job,
    JobError,
    JobEvent,
    JobInput,
    JobStatus,
    utcnow,
)
from recorder.schemas.strategy import PipelineFailure, PipelineOutcome, PipelineSuccess
from recorder.storage.retention import ArtifactRetention
from recorder.utils.logging import get_logger
from recorder.utils.youtube import generate_token

logger = get_logger("recorder.queue.manager")

JobListener = Callable[[JobEvent], None]


def _cancelled() -> PipelineFailure:
    return PipelineFailure(error=JobError(
        code="cancelled",
        message="Recording was interrupted by a server shutdown",
    ))


class JobQueueManager:
    """
    Bounded job queue with FIFO admission and a concurrency cap.

    Args:
        pipeline: Fallback pipeline run once per admitted job
        retention: Store that keeps finished artifacts until retrieval
        max_concurrent: Jobs allowed in ``processing`` at once
        max_queue_depth: Jobs allowed in ``queued`` before enqueue is rejected
        queue_timeout: Age after which a still-queued job is dropped
        retention_timeout: Age after which a finished job is dropped
        clock: Source of "now" (UTC, timezone-aware)
    """

    def __init__(
        self,
        pipeline: FallbackPipeline,
        retention: ArtifactRetention,
        *,
        max_concurrent: int = 3,
        max_queue_depth: int = 20,
        queue_timeout: timedelta = timedelta(minutes=30),
        retention_timeout: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = partial(generate_token, "rec"),
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_queue_depth < 0:
            raise ValueError("max_queue_depth cannot be negative")

        self.pipeline = pipeline
        self.retention = retention
        self.max_concurrent = max_concurrent
        self.max_queue_depth = max_queue_depth
        self.queue_timeout = queue_timeout
        self.retention_timeout = retention_timeout
        self._clock = clock
        self._id_factory = id_factory

        self._lock = asyncio.Lock()
        self._jobs: Dict[str, Job] = {}
        self._queued: Deque[str] = deque()
        self._processing: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._done: Dict[str, asyncio.Event] = {}
        self._listeners: List[JobListener] = []
        self._closing = False

    # ── Submission ──────────────────────────────────────────────────

    async def enqueue(self, job_input: JobInput) -> str:
        """
        Add a job to the queue and run admission.

        Returns:
            The new job ID. Does not wait for the job to run.

        Raises:
            QueueFullError: ``max_queue_depth`` jobs are already waiting
        """
        async with self._lock:
            if len(self._queued) >= self.max_queue_depth:
                logger.warning(
                    "[QUEUE] Rejected %s: %d jobs already waiting",
                    job_input.source_url, len(self._queued),
                )
                raise QueueFullError(self.max_queue_depth)

            job = Job(id=self._new_id(), input=job_input, queued_at=self._clock())
            self._jobs[job.id] = job
            self._queued.append(job.id)
            job.position = len(self._queued)
            self._done[job.id] = asyncio.Event()
            self.retention.reserve(job.id)

            logger.info("[QUEUE] Enqueued %s (position %d) -> %s", job.id, job.position, job_input.source_url)
            self._emit("enqueued", job)
            self._admit_locked()
            return job.id

    async def admit_next(self) -> List[str]:
        """Start queued jobs while there is spare capacity. Returns the IDs started."""
        async with self._lock:
            return self._admit_locked()

    def _admit_locked(self) -> List[str]:
        admitted = []
        while self._queued and len(self._processing) < self.max_concurrent and not self._closing:
            job_id = self._queued.popleft()
            job = self._jobs[job_id]
            job.transition(JobStatus.PROCESSING, self._clock())
            job.message = "Starting"
            self._processing.add(job_id)
            self._recompute_positions()
            self._tasks[job_id] = asyncio.create_task(
                self._drive(job_id, job.input), name=f"pipeline-{job_id}"
            )
            admitted.append(job_id)
            logger.info(
                "[QUEUE] Started %s (%d/%d slots busy)",
                job_id, len(self._processing), self.max_concurrent,
            )
            self._emit("started", job)

        return admitted

    # ── Execution ───────────────────────────────────────────────────

    async def _drive(self, job_id: str, job_input: JobInput) -> None:
        outcome: PipelineOutcome
        try:
            outcome = await self.pipeline.run(
                job_id, job_input, on_progress=partial(self._set_message, job_id)
            )
        except asyncio.CancelledError:
            await self.on_job_finished(job_id, _cancelled())
            raise
        except Exception as e:
            logger.error("[QUEUE] Pipeline crashed for %s: %s", job_id, e, exc_info=True)
            outcome = PipelineFailure(error=JobError(
                code="internal_error",
                message="Unexpected error while recording",
            ))
        await self.on_job_finished(job_id, outcome)

    def _set_message(self, job_id: str, message: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None and job.status is JobStatus.PROCESSING:
            job.message = message

    async def on_job_finished(self, job_id: str, outcome: PipelineOutcome) -> None:
        """Record a job's terminal state, free its slot and admit the next job."""
        async with self._lock:
            self._finish_locked(job_id, outcome)
            self._admit_locked()

    def _finish_locked(self, job_id: str, outcome: PipelineOutcome) -> None:
        self._processing.discard(job_id)
        self._tasks.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.PROCESSING:
            logger.warning("[QUEUE] Ignoring finish for %s: not processing", job_id)
            return

        now = self._clock()
        if isinstance(outcome, PipelineSuccess):
            job.transition(JobStatus.COMPLETED, now)
            job.result = outcome.artifact
            job.strategy = outcome.strategy
            job.degraded = outcome.degraded
            job.title = outcome.artifact.title
            job.message = (
                f"Recording completed via {outcome.strategy} (reduced quality)"
                if outcome.degraded else "Recording completed"
            )
            self.retention.store(job_id, outcome.artifact)
            logger.info("[QUEUE] Completed %s via %s", job_id, outcome.strategy)
            self._emit("completed", job)
        else:
            job.transition(JobStatus.FAILED, now)
            job.error = outcome.error
            job.message = f"Error: {outcome.error.message}"
            self.retention.discard(job_id)
            logger.warning("[QUEUE] Failed %s: %s", job_id, outcome.error.message)
            self._emit("failed", job)
        self._signal_done(job_id)

    # ── Status / retrieval ──────────────────────────────────────────

    def get_status(self, job_id: str) -> Job:
        """
        Snapshot of a job.

        Raises:
            JobNotFoundError: unknown, expired or released job
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.model_copy(deep=True)

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job is completed or failed and return its final snapshot."""
        done = self._done.get(job_id)
        if done is None:
            raise JobNotFoundError(job_id)
        await asyncio.wait_for(done.wait(), timeout=timeout)
        return self.get_status(job_id)

    async def retrieve(self, job_id: str) -> ArtifactRef:
        """
        Claim a finished job's artifact.

        Raises:
            ArtifactNotReady: the job is still queued or processing
            ArtifactNotFound: unknown job, failed job, or already retrieved
        """
        async with self._lock:
            if job_id not in self._jobs:
                raise ArtifactNotFound(job_id)
            return self.retention.retrieve(job_id)

    async def release(self, job_id: str) -> bool:
        """Delete a job's artifact and drop the job record. Safe to call twice."""
        async with self._lock:
            released = self.retention.release(job_id)
            job = self._jobs.get(job_id)
            if job is not None and job.status.is_terminal:
                self._forget_locked(job_id)
                self._emit("released", job)
            return released

    # ── Expiry ──────────────────────────────────────────────────────

    async def sweep_expired(self, now: Optional[datetime] = None) -> List[str]:
        """
        Drop stale jobs and expired artifacts.

        Queued jobs expire ``queue_timeout`` after ``queued_at``; finished
        jobs expire ``retention_timeout`` after they completed or failed.
        Jobs whose artifact passed its retention TTL are dropped with it.
        Processing jobs are never swept.

        Returns:
            IDs of the jobs removed
        """
        now = now or self._clock()
        async with self._lock:
            expired = []
            for job in self._jobs.values():
                if job.status is JobStatus.QUEUED and now - job.queued_at > self.queue_timeout:
                    expired.append(job.id)
                elif job.status.is_terminal and now - job.finished_at > self.retention_timeout:
                    expired.append(job.id)

            for job_id in expired:
                job = self._jobs[job_id]
                if job.status is JobStatus.QUEUED:
                    self._queued.remove(job_id)
                    self._recompute_positions()
                self.retention.release(job_id)
                self._forget_locked(job_id)
                logger.info("[SWEEP] Expired %s (%s)", job_id, job.status.value)
                self._emit("expired", job)

            for job_id in self.retention.expire(now):
                job = self._jobs.get(job_id)
                if job is not None and job.status.is_terminal:
                    self._forget_locked(job_id)
                    expired.append(job_id)
                    self._emit("released", job)

            return expired

    # ── Observability ───────────────────────────────────────────────

    def subscribe(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def stats(self) -> Dict[str, Any]:
        counts = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status.value] += 1
        busy = len(self._processing)
        return {
            **counts,
            "max_concurrent": self.max_concurrent,
            "max_queue_depth": self.max_queue_depth,
            "remaining_capacity": max(0, self.max_concurrent - busy),
            "utilization_percent": (busy / self.max_concurrent) * 100,
        }

    # ── Lifecycle ───────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop admitting and cancel every running pipeline."""
        self._closing = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("[QUEUE] Cancelling %d running job(s)", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

        # tasks cancelled before their first step never reach _drive's handler
        async with self._lock:
            for job_id in list(self._processing):
                self._finish_locked(job_id, _cancelled())

    # ── Internals ───────────────────────────────────────────────────

    def _new_id(self) -> str:
        job_id = self._id_factory()
        # Only ids still tracked need to be unique
        while job_id in self._jobs or job_id in self.retention:
            job_id = self._id_factory()
        return job_id

    def _recompute_positions(self) -> None:
        for position, job_id in enumerate(self._queued, start=1):
            self._jobs[job_id].position = position

    def _forget_locked(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._signal_done(job_id)
        self._done.pop(job_id, None)

    def _signal_done(self, job_id: str) -> None:
        done = self._done.get(job_id)
        if done is not None:
            done.set()

    def _emit(self, kind: str, job: Job) -> None:
        event = JobEvent(kind=kind, job_id=job.id, status=job.status, at=self._clock())
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error("[QUEUE] Event listener failed on %s: %s", kind, e, exc_info=True)
