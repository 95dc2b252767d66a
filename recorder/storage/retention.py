"""
Artifact Retention

Time-bounded store mapping a job to the file it produced. Each record
moves reserved -> stored -> claimed and is finally released, which deletes
the backing file. Unclaimed and claimed records expire on independent TTLs.
"""

from __future__ import annotations

import contextlib
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from recorder.core.errors import ArtifactNotFound, ArtifactNotReady
from recorder.schemas.job import ArtifactRef, utcnow
from recorder.utils.logging import get_logger

logger = get_logger("recorder.storage.retention")


class RecordState(str, enum.Enum):
    RESERVED = "reserved"
    STORED = "stored"
    CLAIMED = "claimed"


@dataclass
class RetentionRecord:
    job_id: str
    state: RecordState = RecordState.RESERVED
    artifact: Optional[ArtifactRef] = None
    reserved_at: datetime = field(default_factory=utcnow)
    stored_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None


class ArtifactRetention:
    """
    Manages the lifetime of produced artifacts.

    - ``reserve`` marks that a job will produce something (retrieve -> NotReady)
    - ``store`` attaches the artifact once the pipeline succeeds
    - ``retrieve`` hands it out once and marks it claimed
    - ``release`` deletes the file and forgets the record (idempotent)
    - ``expire`` applies the unclaimed / claimed TTLs
    """

    def __init__(
        self,
        downloads_dir: str | Path,
        *,
        unclaimed_ttl: timedelta,
        claimed_ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.downloads_dir = Path(downloads_dir)
        self.unclaimed_ttl = unclaimed_ttl
        self.claimed_ttl = claimed_ttl
        self._clock = clock
        self._records: Dict[str, RetentionRecord] = {}

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._records

    def ensure_directory(self) -> None:
        self.downloads_dir.mkdir(parents=True, exist_ok=True)

    def reserve(self, job_id: str) -> None:
        self._records.setdefault(job_id, RetentionRecord(job_id=job_id, reserved_at=self._clock()))

    def store(self, job_id: str, artifact: ArtifactRef) -> None:
        """
        Record the artifact produced for a job.

        Args:
            job_id: Job that produced the artifact
            artifact: Location and description of the file
        """
        record = self._records.setdefault(job_id, RetentionRecord(job_id=job_id))
        record.artifact = artifact
        record.state = RecordState.STORED
        record.stored_at = self._clock()
        logger.info("[RETENTION] Stored %s for %s (%d KB)", artifact.filename, job_id, artifact.size_kb)

    def discard(self, job_id: str) -> None:
        """Drop a reservation whose job failed without producing anything."""
        record = self._records.get(job_id)
        if record is not None and record.state is RecordState.RESERVED:
            del self._records[job_id]

    def retrieve(self, job_id: str) -> ArtifactRef:
        """
        Hand out a stored artifact and mark it claimed.

        Returns:
            The artifact reference

        Raises:
            ArtifactNotReady: the job is known but has not produced its file yet
            ArtifactNotFound: unknown job, already claimed, or already released
        """
        record = self._records.get(job_id)
        if record is None or record.state is RecordState.CLAIMED:
            raise ArtifactNotFound(job_id)
        if record.state is RecordState.RESERVED:
            raise ArtifactNotReady(job_id)

        record.state = RecordState.CLAIMED
        record.claimed_at = self._clock()
        logger.info("[RETENTION] %s claimed by download", job_id)
        return record.artifact

    def release(self, job_id: str) -> bool:
        """
        Delete the backing file and forget the record.

        Returns:
            True if a record was released, False if there was nothing to do
        """
        record = self._records.pop(job_id, None)
        if record is None:
            return False

        if record.artifact is not None:
            path = Path(record.artifact.path)
            try:
                path.unlink()
                logger.info("[RETENTION] Deleted %s (%s)", path.name, job_id)
            except FileNotFoundError:
                logger.debug("[RETENTION] %s was already gone", path.name)
            except OSError as e:
                logger.error("[RETENTION] Could not delete %s: %s", path, e)
        return True

    def expire(self, now: datetime | None = None) -> list[str]:
        """
        Release records whose TTL has lapsed.

        Returns:
            Job IDs that were released
        """
        now = now or self._clock()
        due = []
        for job_id, record in self._records.items():
            if record.state is RecordState.STORED and now - record.stored_at >= self.unclaimed_ttl:
                due.append(job_id)
            elif record.state is RecordState.CLAIMED and now - record.claimed_at >= self.claimed_ttl:
                due.append(job_id)

        for job_id in due:
            self.release(job_id)
        if due:
            logger.info("[RETENTION] Expired %d artifact(s)", len(due))
        return due

    def remove_orphans(self, now: datetime | None = None, max_age: timedelta = timedelta(hours=1)) -> list[Path]:
        """
        Delete files in the downloads directory that no record references.

        Only files older than ``max_age`` are touched, so in-flight
        downloads (which are not recorded until they finish) survive.
        """
        now = now or self._clock()
        if not self.downloads_dir.is_dir():
            return []

        referenced = {
            Path(record.artifact.path).resolve()
            for record in self._records.values()
            if record.artifact is not None
        }
        removed = []
        for path in self.downloads_dir.iterdir():
            if not path.is_file() or path.resolve() in referenced:
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=now.tzinfo)
            if now - modified < max_age:
                continue
            with contextlib.suppress(FileNotFoundError):
                path.unlink()
                removed.append(path)

        if removed:
            logger.info("[RETENTION] Removed %d orphaned file(s)", len(removed))
        return removed

    def get_stats(self) -> Dict[str, Any]:
        counts = {state.value: 0 for state in RecordState}
        for record in self._records.values():
            counts[record.state.value] += 1
        return {
            "records": len(self._records),
            **counts,
            "unclaimed_ttl_seconds": self.unclaimed_ttl.total_seconds(),
            "claimed_ttl_seconds": self.claimed_ttl.total_seconds(),
        }
