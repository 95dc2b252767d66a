"""
Sweeper: periodic background cleanup.

Every ``interval`` it expires stale jobs and lapsed artifacts through the
queue manager, then deletes files in the downloads directory that no
record knows about.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from recorder.queue.manager import JobQueueManager
from recorder.schemas.job import utcnow
from recorder.storage.retention import ArtifactRetention
from recorder.utils.logging import get_logger
from recorder.utils.timing import timed

logger = get_logger("recorder.queue.sweeper")


class Sweeper:
    def __init__(
        self,
        manager: JobQueueManager,
        retention: ArtifactRetention,
        *,
        interval: float = 600,
        orphan_max_age: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.manager = manager
        self.retention = retention
        self.interval = interval
        self.orphan_max_age = orphan_max_age
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="sweeper")
        logger.info("[SWEEP] Started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[SWEEP] Stopped")

    @timed("sweep")
    async def sweep_once(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self._clock()
        expired = await self.manager.sweep_expired(now)
        orphans = self.retention.remove_orphans(now, self.orphan_max_age)
        if expired or orphans:
            logger.info("[SWEEP] Removed %d job(s), %d orphaned file(s)", len(expired), len(orphans))
        return {"expired_jobs": expired, "orphaned_files": [p.name for p in orphans]}

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error("[SWEEP] Pass failed: %s", e, exc_info=True)
