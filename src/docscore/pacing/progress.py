"""Observable progress state for a single run.

RunProgress holds the counters the scheduler mutates after every job and
batch transition, notifies local callbacks (CLI progress lines) and renders
the ``progress`` event published to the run's observer.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from docscore.logging import get_logger
from docscore.schemas import JobOutcome, ProgressEvent, RunState

logger = get_logger(__name__)


@dataclass
class ProgressUpdate:
    """A progress update delivered to callbacks."""

    run_id: str
    total: int
    completed: int
    """Jobs with an outcome, successful or not."""
    failed: int
    batch_index: int
    total_batches: int
    state: RunState
    current_item: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        """Jobs that were scored."""
        return self.completed - self.failed

    @property
    def remaining(self) -> int:
        """Number of jobs without an outcome yet."""
        return max(0, self.total - self.completed)

    @property
    def progress_percent(self) -> float:
        """Completion percentage (0-100)."""
        if self.total == 0:
            return 100.0
        return (self.completed / self.total) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "batch_index": self.batch_index,
            "total_batches": self.total_batches,
            "current_item": self.current_item,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


ProgressCallback = Callable[[ProgressUpdate], None]


class RunProgress:
    """Observable progress of one run.

    ``completed`` counts every job with an outcome (the number shown to
    observers); ``failed`` is the subset of those that failed.

    Usage:
        progress = RunProgress("run-1", total=5, total_batches=2)
        progress.on_progress(lambda u: print(f"{u.progress_percent:.0f}%"))

        progress.start()
        progress.start_batch(1)
        progress.record(outcome)
        progress.complete()
    """

    def __init__(self, run_id: str, total: int = 0, total_batches: int = 0) -> None:
        self._run_id = run_id
        self._total = total
        self._total_batches = total_batches
        self._completed = 0
        self._failed = 0
        self._batch_index = 0
        self._state = RunState.CREATED
        self._current_item: str | None = None
        self._error: str | None = None
        self._started_at: datetime | None = None
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._callbacks: list[ProgressCallback] = []

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def total(self) -> int:
        return self._total

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def succeeded(self) -> int:
        return self._completed - self._failed

    @property
    def batch_index(self) -> int:
        return self._batch_index

    @property
    def total_batches(self) -> int:
        return self._total_batches

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def current_item(self) -> str | None:
        return self._current_item

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def is_done(self) -> bool:
        """Whether the run reached a terminal state."""
        return self._state.is_terminal

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time since start in seconds (frozen once terminal)."""
        if self._start_time is None:
            return 0.0
        end = self._end_time if self._end_time is not None else time.monotonic()
        return end - self._start_time

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------
    def on_progress(self, callback: ProgressCallback) -> None:
        """Register a callback receiving a ProgressUpdate on every change."""
        self._callbacks.append(callback)

    def _notify(self) -> None:
        update = self.get_update()
        for callback in self._callbacks:
            try:
                callback(update)
            except Exception as e:
                logger.warning("Progress callback error: {}", e)

    # -------------------------------------------------------------------------
    # State Management
    # -------------------------------------------------------------------------
    def start(self) -> None:
        """Mark the run as running."""
        self._state = RunState.RUNNING
        self._started_at = datetime.now(UTC)
        self._start_time = time.monotonic()
        logger.info(
            "Started run {} ({} jobs in {} batches)",
            self._run_id,
            self._total,
            self._total_batches,
        )
        self._notify()

    def start_batch(self, batch_index: int) -> None:
        """Record that a batch (1-based) is being dispatched."""
        self._batch_index = batch_index
        self._current_item = None
        self._notify()

    def record(self, outcome: JobOutcome) -> None:
        """Count one job outcome."""
        self._completed += 1
        if not outcome.success:
            self._failed += 1
        self._current_item = outcome.name
        logger.debug(
            "Run {} progress: {}/{} ({} failed)",
            self._run_id,
            self._completed,
            self._total,
            self._failed,
        )
        self._notify()

    def complete(self) -> None:
        """Mark the run as completed."""
        self._finish(RunState.COMPLETED)
        logger.info(
            "Completed run {}: {} succeeded, {} failed in {:.1f}s",
            self._run_id,
            self.succeeded,
            self._failed,
            self.elapsed_seconds,
        )
        self._notify()

    def abort(self, error: str) -> None:
        """Mark the run as aborted."""
        self._error = error
        self._finish(RunState.ABORTED)
        logger.error("Aborted run {}: {}", self._run_id, error)
        self._notify()

    def _finish(self, state: RunState) -> None:
        self._state = state
        self._current_item = None
        if self._start_time is not None:
            self._end_time = time.monotonic()

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------
    def get_update(self) -> ProgressUpdate:
        """Get current progress as an update object."""
        return ProgressUpdate(
            run_id=self._run_id,
            total=self._total,
            completed=self._completed,
            failed=self._failed,
            batch_index=self._batch_index,
            total_batches=self._total_batches,
            state=self._state,
            current_item=self._current_item,
            error=self._error,
            started_at=self._started_at,
            elapsed_seconds=self.elapsed_seconds,
        )

    def to_event(self) -> ProgressEvent:
        """Render the observer-facing ``progress`` event."""
        return ProgressEvent(
            completed=self._completed,
            total=self._total,
            batch_index=self._batch_index,
            total_batches=self._total_batches,
            current_item=self._current_item,
        )
