"""
Tests for the job queue manager: admission, positions, capacity,
terminal states, retrieval and expiry.
"""

import asyncio
from itertools import cycle

import pytest

from fakes import ScriptedStrategy, descriptor
from recorder.core.errors import (
    ArtifactNotFound,
    ArtifactNotReady,
    JobNotFoundError,
    QueueFullError,
    TerminalJobError,
    TerminalStrategyError,
)
from recorder.schemas.job import JobInput, JobStatus


async def settle():
    """Let freshly created pipeline tasks reach their first await."""
    for _ in range(5):
        await asyncio.sleep(0)


def job_for(video_id):
    return JobInput(source_url=f"https://youtu.be/{video_id}", video_id=video_id)


class TestConstruction:
    def test_rejects_zero_concurrency(self, make_manager, downloads):
        with pytest.raises(ValueError):
            make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))], max_concurrent=0)

    @pytest.mark.asyncio
    async def test_ids_do_not_collide_with_tracked_jobs(self, make_manager, downloads, job_input):
        ids = cycle(["rec_a", "rec_a", "rec_b"])
        manager = make_manager(
            [(descriptor("a", 0), ScriptedStrategy(downloads, "a", gate=asyncio.Event()))],
            id_factory=lambda: next(ids),
        )
        assert await manager.enqueue(job_input) == "rec_a"
        assert await manager.enqueue(job_input) == "rec_b"
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_forgotten_ids_leave_no_trace(self, make_manager, downloads, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        job_id = await manager.enqueue(job_input)
        await manager.wait(job_id, timeout=2)
        assert await manager.release(job_id) is True

        assert job_id not in manager._jobs
        assert job_id not in manager.retention


class TestAdmission:
    @pytest.mark.asyncio
    async def test_second_job_waits_for_the_first(self, make_manager, downloads, job_input):
        gate = asyncio.Event()
        strategy = ScriptedStrategy(downloads, "a", gate=gate)
        manager = make_manager([(descriptor("a", 0), strategy)], max_concurrent=1)

        first = await manager.enqueue(job_input)
        second = await manager.enqueue(job_for("second"))

        a = manager.get_status(first)
        b = manager.get_status(second)
        assert a.status is JobStatus.PROCESSING
        assert a.position is None
        assert a.started_at is not None
        assert b.status is JobStatus.QUEUED
        assert b.position == 1

        gate.set()
        done_a = await manager.wait(first, timeout=2)
        done_b = await manager.wait(second, timeout=2)

        assert done_a.status is JobStatus.COMPLETED
        assert done_b.status is JobStatus.COMPLETED
        assert done_b.position is None
        assert done_b.started_at >= done_a.completed_at

    @pytest.mark.asyncio
    async def test_concurrency_cap_is_respected(self, make_manager, downloads):
        gate = asyncio.Event()
        strategy = ScriptedStrategy(downloads, "a", gate=gate)
        manager = make_manager([(descriptor("a", 0), strategy)], max_concurrent=2)

        ids = [await manager.enqueue(job_for(f"v{i}")) for i in range(5)]
        await settle()

        stats = manager.stats()
        assert stats["processing"] == 2
        assert stats["queued"] == 3
        assert stats["remaining_capacity"] == 0
        assert stats["utilization_percent"] == 100
        assert strategy.active == 2

        gate.set()
        for job_id in ids:
            assert (await manager.wait(job_id, timeout=2)).status is JobStatus.COMPLETED
        assert strategy.max_active == 2

    @pytest.mark.asyncio
    async def test_queue_full_rejects_without_creating_a_job(self, make_manager, downloads):
        gate = asyncio.Event()
        strategy = ScriptedStrategy(downloads, "a", gate=gate)
        manager = make_manager([(descriptor("a", 0), strategy)], max_concurrent=1, max_queue_depth=2)

        for i in range(3):
            await manager.enqueue(job_for(f"v{i}"))

        with pytest.raises(QueueFullError) as exc_info:
            await manager.enqueue(job_for("overflow"))
        assert exc_info.value.depth == 2

        stats = manager.stats()
        assert stats["processing"] + stats["queued"] == 3
        gate.set()

    @pytest.mark.asyncio
    async def test_positions_stay_contiguous(self, make_manager, downloads):
        gate = asyncio.Event()
        strategy = ScriptedStrategy(downloads, "a", gate=gate)
        manager = make_manager([(descriptor("a", 0), strategy)], max_concurrent=1)
        known = set()
        snapshots = []

        def check(event):
            known.add(event.job_id)
            queued = [manager.get_status(j) for j in known if j in manager._jobs]
            positions = sorted(j.position for j in queued if j.status is JobStatus.QUEUED)
            snapshots.append(positions)
            assert all(j.position is None for j in queued if j.status is not JobStatus.QUEUED)

        manager.subscribe(check)
        ids = [await manager.enqueue(job_for(f"v{i}")) for i in range(4)]
        gate.set()
        for job_id in ids:
            await manager.wait(job_id, timeout=2)

        assert snapshots
        for positions in snapshots:
            assert positions == list(range(1, len(positions) + 1))


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_terminal_input_fails_the_job(self, make_manager, downloads, job_input):
        first = ScriptedStrategy(downloads, "first", [TerminalJobError("Video unavailable")])
        last = ScriptedStrategy(downloads, "last")
        manager = make_manager([(descriptor("first", 0), first), (descriptor("last", 1), last)])

        job_id = await manager.enqueue(job_input)
        job = await manager.wait(job_id, timeout=2)

        assert job.status is JobStatus.FAILED
        assert job.failed_at is not None
        assert job.error.code == "terminal_input"
        assert job.message == "Error: Video unavailable"
        assert last.calls == 0
        with pytest.raises(ArtifactNotFound):
            await manager.retrieve(job_id)

    @pytest.mark.asyncio
    async def test_guaranteed_strategy_marks_job_degraded(self, make_manager, downloads, job_input):
        first = ScriptedStrategy(downloads, "first", [TerminalStrategyError("bot check")])
        last = ScriptedStrategy(downloads, "last")
        manager = make_manager([(descriptor("first", 0), first), (descriptor("last", 1), last)])

        job = await manager.wait(await manager.enqueue(job_input), timeout=2)

        assert job.status is JobStatus.COMPLETED
        assert job.degraded is True
        assert job.strategy == "last"
        assert job.title == "last take"
        assert "reduced quality" in job.message
        assert job.result.degraded is True

    @pytest.mark.asyncio
    async def test_pipeline_crash_fails_job_and_admits_next(self, make_manager, downloads, job_input):
        strategy = ScriptedStrategy(downloads, "a")
        manager = make_manager([(descriptor("a", 0), strategy)], max_concurrent=1)
        real_run = manager.pipeline.run
        calls = []

        async def flaky_run(*args, **kwargs):
            calls.append(args[0])
            if len(calls) == 1:
                raise RuntimeError("boom")
            return await real_run(*args, **kwargs)

        manager.pipeline.run = flaky_run

        first = await manager.enqueue(job_input)
        second = await manager.enqueue(job_for("second"))

        crashed = await manager.wait(first, timeout=2)
        fine = await manager.wait(second, timeout=2)
        assert crashed.status is JobStatus.FAILED
        assert crashed.error.code == "internal_error"
        assert fine.status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_event_sequence(self, make_manager, downloads, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        events = []
        manager.subscribe(lambda e: events.append((e.kind, e.status)))

        job_id = await manager.enqueue(job_input)
        await manager.wait(job_id, timeout=2)
        await manager.release(job_id)

        assert events == [
            ("enqueued", JobStatus.QUEUED),
            ("started", JobStatus.PROCESSING),
            ("completed", JobStatus.COMPLETED),
            ("released", JobStatus.COMPLETED),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_the_queue(self, make_manager, downloads, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])

        def explode(event):
            raise RuntimeError("listener bug")

        manager.subscribe(explode)
        job = await manager.wait(await manager.enqueue(job_input), timeout=2)
        assert job.status is JobStatus.COMPLETED


class TestRetrieval:
    @pytest.mark.asyncio
    async def test_unknown_job(self, make_manager, downloads):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        with pytest.raises(JobNotFoundError):
            manager.get_status("rec_missing")
        with pytest.raises(ArtifactNotFound):
            await manager.retrieve("rec_missing")

    @pytest.mark.asyncio
    async def test_not_ready_while_queued_or_processing(self, make_manager, downloads, job_input):
        gate = asyncio.Event()
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a", gate=gate))])

        first = await manager.enqueue(job_input)
        second = await manager.enqueue(job_for("second"))

        with pytest.raises(ArtifactNotReady):
            await manager.retrieve(first)
        with pytest.raises(ArtifactNotReady):
            await manager.retrieve(second)
        gate.set()

    @pytest.mark.asyncio
    async def test_artifact_is_handed_out_once(self, make_manager, downloads, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        job_id = await manager.enqueue(job_input)
        await manager.wait(job_id, timeout=2)

        artifact = await manager.retrieve(job_id)
        assert artifact.strategy == "a"
        assert (downloads / artifact.filename).is_file()

        with pytest.raises(ArtifactNotFound):
            await manager.retrieve(job_id)

    @pytest.mark.asyncio
    async def test_release_deletes_file_and_record(self, make_manager, downloads, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        job_id = await manager.enqueue(job_input)
        await manager.wait(job_id, timeout=2)
        artifact = await manager.retrieve(job_id)

        assert await manager.release(job_id) is True
        assert not (downloads / artifact.filename).exists()
        with pytest.raises(JobNotFoundError):
            manager.get_status(job_id)
        assert await manager.release(job_id) is False


class TestExpiry:
    @pytest.mark.asyncio
    async def test_stale_queued_job_expires_but_processing_job_survives(
        self, make_manager, downloads, clock, job_input
    ):
        gate = asyncio.Event()
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a", gate=gate))])
        running = await manager.enqueue(job_input)
        waiting = await manager.enqueue(job_for("waiting"))
        behind = await manager.enqueue(job_for("behind"))

        clock.advance(minutes=31)
        expired = await manager.sweep_expired()

        assert set(expired) == {waiting, behind}
        assert manager.get_status(running).status is JobStatus.PROCESSING
        with pytest.raises(JobNotFoundError):
            manager.get_status(waiting)

        gate.set()
        assert (await manager.wait(running, timeout=2)).status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_finished_job_expires_with_its_file(self, make_manager, downloads, clock, job_input):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        job_id = await manager.enqueue(job_input)
        job = await manager.wait(job_id, timeout=2)

        clock.advance(minutes=29)
        assert await manager.sweep_expired() == []

        clock.advance(minutes=2)
        assert await manager.sweep_expired() == [job_id]
        assert not (downloads / job.result.filename).exists()
        with pytest.raises(JobNotFoundError):
            manager.get_status(job_id)

    @pytest.mark.asyncio
    async def test_claimed_artifact_expires_after_grace_window(
        self, make_manager, downloads, clock, job_input
    ):
        manager = make_manager([(descriptor("a", 0), ScriptedStrategy(downloads, "a"))])
        job_id = await manager.enqueue(job_input)
        await manager.wait(job_id, timeout=2)
        artifact = await manager.retrieve(job_id)

        clock.advance(minutes=4)
        assert await manager.sweep_expired() == []
        assert (downloads / artifact.filename).exists()

        clock.advance(minutes=2)
        assert await manager.sweep_expired() == [job_id]
        assert not (downloads / artifact.filename).exists()


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self, make_manager, downloads, job_input):
        gate = asyncio.Event()
        strategy = ScriptedStrategy(downloads, "a", gate=gate)
        manager = make_manager([(descriptor("a", 0), strategy)])
        running = await manager.enqueue(job_input)
        waiting = await manager.enqueue(job_for("waiting"))
        await settle()

        await manager.shutdown()

        job = manager.get_status(running)
        assert job.status is JobStatus.FAILED
        assert job.error.code == "cancelled"
        assert strategy.cleaned_up == 1
        assert manager.get_status(waiting).status is JobStatus.QUEUED
