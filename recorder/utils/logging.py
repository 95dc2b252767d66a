"""
Structured logging setup.

Every module logs through a child of the ``recorder`` logger and prefixes
lifecycle lines with an area tag ([QUEUE], [PIPELINE], [RETENTION], ...).

Usage:
    from recorder.utils.logging import get_logger
    logger = get_logger("recorder.queue.manager")
    logger.info("[QUEUE] Enqueued %s", job_id)
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER = "recorder"

_handler: logging.Handler | None = None


def level_for(environment: str) -> int:
    """Verbose in development, warnings and up everywhere else."""
    return logging.INFO if environment == "development" else logging.WARNING


def setup_logging(level: int | None = None) -> None:
    """
    Attach the stderr handler to the ``recorder`` logger.

    The handler is only added once; later calls just change the level,
    so modules can call ``get_logger()`` at import time and the app can
    pick the real level at startup.
    """
    global _handler
    root = logging.getLogger(ROOT_LOGGER)

    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root.addHandler(_handler)
        root.setLevel(logging.INFO)
        # Uvicorn configures the root logger too; stop lines printing twice
        root.propagate = False

    if level is not None:
        root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``recorder`` namespace, attaching the handler on first use."""
    setup_logging()
    return logging.getLogger(name)
