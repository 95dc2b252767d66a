"""
Job queue core.

  manager.py   admission control, job state machine, lifecycle events
  pipeline.py  ordered fallback across extraction strategies
  sweeper.py   periodic expiry of stale jobs and orphaned files
"""

from recorder.queue.manager import JobQueueManager
from recorder.queue.pipeline import FallbackPipeline
from recorder.queue.sweeper import Sweeper

__all__ = ["JobQueueManager", "FallbackPipeline", "Sweeper"]
