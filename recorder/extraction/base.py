"""
Strategy Executor contract.

Every extraction method implements ``_produce()`` and signals failures by
raising one of the strategy errors. ``execute()`` wraps it with the
timeout and turns every exit path into a tagged outcome, so the pipeline
never sees a raw exception.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

from recorder.core.errors import (
    RetryableStrategyError,
    TerminalJobError,
    TerminalStrategyError,
)
from recorder.schemas.job import ArtifactRef, JobInput
from recorder.schemas.strategy import (
    RetryableFailure,
    StrategyOutcome,
    Success,
    TerminalJobFailure,
    TerminalStrategyFailure,
)
from recorder.utils.logging import get_logger
from recorder.utils.youtube import artifact_basename

logger = get_logger("recorder.extraction")


class StrategyExecutor(ABC):
    """
    One named way of producing an artifact from a job input.

    Subclasses must release whatever they acquire (subprocesses, HTTP
    clients, partial files) in ``finally`` blocks: on timeout the running
    ``_produce()`` coroutine is cancelled, not abandoned.
    """

    name: str = "strategy"

    def __init__(self, downloads_dir: str | Path):
        self.downloads_dir = Path(downloads_dir)

    async def execute(self, job_input: JobInput, timeout: float) -> StrategyOutcome:
        try:
            artifact = await asyncio.wait_for(self._produce(job_input), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("[%s] Timed out after %.0fs", self.name, timeout)
            return RetryableFailure(reason=f"{self.name} timed out after {timeout:g}s")
        except RetryableStrategyError as e:
            return RetryableFailure(reason=e.reason)
        except TerminalJobError as e:
            return TerminalJobFailure(reason=e.reason)
        except TerminalStrategyError as e:
            return TerminalStrategyFailure(reason=e.reason)
        except Exception as e:
            logger.error("[%s] Unexpected error: %s", self.name, e, exc_info=True)
            return TerminalStrategyFailure(reason=f"{self.name} failed unexpectedly: {e}")

        artifact.strategy = self.name
        return Success(artifact=artifact)

    @abstractmethod
    async def _produce(self, job_input: JobInput) -> ArtifactRef:
        """Produce the artifact or raise a ``StrategyError`` subclass."""

    def _new_stem(self) -> Path:
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        return self.downloads_dir / artifact_basename()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
