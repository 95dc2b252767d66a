"""
Fallback Pipeline: turns one admitted job into a terminal outcome.

Strategies are tried in ascending ordinal order:

  success              -> stop, the artifact is the job's result
  retryable            -> back off and retry the same strategy while
                          retries remain, then move on
  terminal for job     -> stop, no later strategy can help
  terminal for strategy-> move on immediately, no retry consumed

The list is expected to end with a guaranteed producer, so exhausting
every strategy should only happen when even that one cannot run.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Sequence

from recorder.extraction.base import StrategyExecutor
from recorder.schemas.job import JobError, JobInput
from recorder.schemas.strategy import (
    PipelineAttempt,
    PipelineFailure,
    PipelineOutcome,
    PipelineSuccess,
    RetryableFailure,
    StrategyDescriptor,
    Success,
    TerminalJobFailure,
)
from recorder.utils.logging import get_logger
from recorder.utils.timing import Timer

logger = get_logger("recorder.queue.pipeline")

ProgressCallback = Callable[[str], None]


class FallbackPipeline:
    def __init__(
        self,
        strategies: Sequence[tuple[StrategyDescriptor, StrategyExecutor]],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        if not strategies:
            raise ValueError("FallbackPipeline needs at least one strategy")
        self.strategies = sorted(strategies, key=lambda pair: pair[0].ordinal)
        self._sleep = sleep
        self._rng = rng

    @property
    def descriptors(self) -> list[StrategyDescriptor]:
        return [descriptor for descriptor, _ in self.strategies]

    def backoff_delay(self, descriptor: StrategyDescriptor, retry_count: int) -> float:
        """Exponential delay with +/-50% jitter so parallel jobs don't retry in lockstep."""
        return descriptor.retry_backoff * (2 ** retry_count) * (0.5 + self._rng())

    async def run(
        self,
        job_id: str,
        job_input: JobInput,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineOutcome:
        attempt = PipelineAttempt()
        failures: list[str] = []

        def progress(message: str) -> None:
            if on_progress is not None:
                on_progress(message)

        while attempt.strategy_index < len(self.strategies):
            descriptor, executor = self.strategies[attempt.strategy_index]
            if attempt.retry_count == 0:
                progress(f"Trying {descriptor.name}")
                logger.info("[PIPELINE] %s: trying %s", job_id, descriptor.name)

            async with Timer() as t:
                outcome = await executor.execute(job_input, descriptor.timeout)

            if isinstance(outcome, Success):
                degraded = attempt.strategy_index > 0
                outcome.artifact.degraded = degraded
                logger.info(
                    "[PIPELINE] %s: %s succeeded in %.2fs%s",
                    job_id, descriptor.name, t.elapsed_s, " (degraded)" if degraded else "",
                )
                return PipelineSuccess(
                    artifact=outcome.artifact,
                    strategy=descriptor.name,
                    degraded=degraded,
                )

            attempt.last_error = outcome.reason

            if isinstance(outcome, TerminalJobFailure):
                logger.warning(
                    "[PIPELINE] %s: %s reports the input cannot be processed: %s",
                    job_id, descriptor.name, outcome.reason,
                )
                failures.append(f"{descriptor.name}: {outcome.reason}")
                return PipelineFailure(error=JobError(
                    code="terminal_input",
                    message=outcome.reason,
                    strategy=descriptor.name,
                    attempts=failures,
                ))

            if isinstance(outcome, RetryableFailure) and attempt.retry_count < descriptor.max_retries:
                delay = self.backoff_delay(descriptor, attempt.retry_count)
                attempt.retry_count += 1
                progress(f"Retrying {descriptor.name} ({attempt.retry_count}/{descriptor.max_retries})")
                logger.warning(
                    "[PIPELINE] %s: %s failed (%s), retry %d/%d in %.1fs",
                    job_id, descriptor.name, outcome.reason,
                    attempt.retry_count, descriptor.max_retries, delay,
                )
                await self._sleep(delay)
                continue

            logger.warning(
                "[PIPELINE] %s: %s gave up (%s), falling back",
                job_id, descriptor.name, outcome.reason,
            )
            failures.append(f"{descriptor.name}: {outcome.reason}")
            attempt = PipelineAttempt(strategy_index=attempt.strategy_index + 1)

        logger.error("[PIPELINE] %s: every strategy failed", job_id)
        return PipelineFailure(error=JobError(
            code="all_strategies_failed",
            message="Could not produce any recording for this video",
            strategy=self.strategies[-1][0].name,
            attempts=failures,
        ))
