"""Run pacing: retrying calls, batch scheduling and progress publishing.

Components:
- RetryingCaller: Rate-limited scoring call with bounded retry
- BatchScheduler: Sequential batches with bounded concurrency
- ProgressChannel: Per-run observer registry
- RunProgress: Observable progress state of a run
"""

from .batch import BatchScheduler, RunResult, check_unique_ids, rank_outcomes
from .channel import ObserverSink, ProgressChannel, QueueSink
from .progress import ProgressCallback, ProgressUpdate, RunProgress
from .retry import RetryingCaller

__all__ = [
    # Batch scheduling
    "BatchScheduler",
    "RunResult",
    "check_unique_ids",
    "rank_outcomes",
    # Progress channel
    "ObserverSink",
    "ProgressChannel",
    "QueueSink",
    # Progress tracking
    "ProgressCallback",
    "ProgressUpdate",
    "RunProgress",
    # Retry
    "RetryingCaller",
]
