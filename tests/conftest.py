"""
Shared fixtures: scripted strategies, a controllable clock and
factories for the pipeline / queue manager under test.
"""

from datetime import timedelta
from pathlib import Path

import pytest

from fakes import FakeClock, RecordingSleep
from recorder.queue.manager import JobQueueManager
from recorder.queue.pipeline import FallbackPipeline
from recorder.schemas.job import JobInput
from recorder.storage.retention import ArtifactRetention


@pytest.fixture
def downloads(tmp_path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def job_input():
    return JobInput(source_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ", video_id="dQw4w9WgXcQ")


@pytest.fixture
def retention(downloads, clock):
    return ArtifactRetention(
        downloads,
        unclaimed_ttl=timedelta(minutes=30),
        claimed_ttl=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
def make_manager(retention, clock):
    def _make(strategies, **kwargs):
        pipeline = FallbackPipeline(strategies, sleep=RecordingSleep(), rng=lambda: 0.5)
        options = {
            "max_concurrent": 1,
            "max_queue_depth": 10,
            "queue_timeout": timedelta(minutes=30),
            "retention_timeout": timedelta(minutes=30),
            "clock": clock,
        }
        options.update(kwargs)
        return JobQueueManager(pipeline, retention, **options)

    return _make
