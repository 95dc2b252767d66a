"""
Wall-clock timing helpers.

    @timed("sweep")
    async def sweep_once(now): ...

    async with Timer() as t:
        outcome = await executor.execute(job_input, timeout)
    logger.info("took %.2fs", t.elapsed_s)
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from typing import Any, Callable

from recorder.utils.logging import get_logger

logger = get_logger("recorder.timing")


class Timer:
    """
    Context manager measuring elapsed wall-clock time, usable with both
    ``with`` and ``async with``. When given a label the duration is
    logged at DEBUG on exit, to ``log`` if provided.
    """

    def __init__(self, label: str = "", *, log: logging.Logger | None = None):
        self.label = label
        self._log = log or logger
        self._start = 0.0
        self.elapsed_s = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_s * 1000

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: Any) -> None:
        self.elapsed_s = time.perf_counter() - self._start
        if self.label:
            self._log.debug("%s took %.1fms", self.label, self.elapsed_ms)

    async def __aenter__(self) -> "Timer":
        return self.__enter__()

    async def __aexit__(self, *exc: Any) -> None:
        self.__exit__(*exc)


def timed(label: str | None = None) -> Callable:
    """Log the duration of every call to the decorated function (sync or async)."""

    def decorator(fn: Callable) -> Callable:
        name = label or fn.__qualname__

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                async with Timer(name):
                    return await fn(*args, **kwargs)
            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with Timer(name):
                return fn(*args, **kwargs)
        return sync_wrapper

    return decorator
