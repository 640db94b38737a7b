"""Run submission and in-memory run registry.

A run is started either in the background (the caller gets a RunAccepted
acknowledgement and follows progress on the run's event stream) or
synchronously (the caller awaits the final RunResult).
"""

from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from docscore.exceptions import DocumentFetchFailure, RunConflict
from docscore.logging import get_logger
from docscore.pacing import (
    BatchScheduler,
    ProgressCallback,
    RunProgress,
    RunResult,
    check_unique_ids,
)
from docscore.schemas import Job, RunState
from docscore.sources import DocumentSource

logger = get_logger(__name__)

# Finished runs kept for status queries
DEFAULT_HISTORY_SIZE = 100


@dataclass
class RunAccepted:
    """Acknowledgement for a run started in the background."""

    run_id: str
    job_count: int
    total_batches: int
    stream_url: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "runId": self.run_id,
            "jobCount": self.job_count,
            "totalBatches": self.total_batches,
            "streamUrl": self.stream_url,
        }


@dataclass
class RunRecord:
    """Registry entry for one run."""

    run_id: str
    progress: RunProgress
    result: RunResult | None = None
    error: str | None = None
    """Set when the run crashed instead of producing a result."""
    task: asyncio.Task[RunResult] | None = field(default=None, repr=False)

    @property
    def state(self) -> RunState:
        if self.result is not None:
            return self.result.state
        return self.progress.state

    @property
    def is_active(self) -> bool:
        """Whether the run still occupies its id."""
        return self.result is None and self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        update = self.progress.get_update()
        return {
            "runId": self.run_id,
            "state": self.state.value,
            "progress": {
                "completed": update.completed,
                "failed": update.failed,
                "total": update.total,
                "batchIndex": update.batch_index,
                "totalBatches": update.total_batches,
                "currentItem": update.current_item,
            },
            "error": self.error,
            "result": self.result.to_dict() if self.result else None,
        }


def new_run_id() -> str:
    """Generate a run identifier."""
    return uuid.uuid4().hex


class RunService:
    """Starts runs on a BatchScheduler and tracks them by id.

    Usage:
        service = RunService(scheduler, documents=LocalDocumentSource(root))

        jobs = await service.jobs_from_source("inbox", description)
        accepted = await service.submit(jobs)       # background
        result = await service.run(jobs)            # wait for the result

        record = service.get(accepted.run_id)
    """

    def __init__(
        self,
        scheduler: BatchScheduler,
        *,
        documents: DocumentSource | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
        stream_url_template: str = "/api/runs/{run_id}/stream",
    ) -> None:
        self._scheduler = scheduler
        self._documents = documents
        self._history_size = history_size
        self._stream_url_template = stream_url_template
        self._runs: OrderedDict[str, RunRecord] = OrderedDict()
        self._tasks: set[asyncio.Task[RunResult]] = set()

    @property
    def scheduler(self) -> BatchScheduler:
        return self._scheduler

    async def jobs_from_source(self, locator: str, description: str) -> list[Job]:
        """Build one job per document under ``locator``.

        Document text is fetched lazily when each job runs.

        Raises:
            DocumentFetchFailure: No document source, or the locator cannot be listed
        """
        if self._documents is None:
            raise DocumentFetchFailure("No document source configured")
        refs = await self._documents.list_documents(locator)
        logger.info("Building {} jobs from {}", len(refs), locator)
        return [Job.from_document(ref, description) for ref in refs]

    async def submit(self, jobs: Sequence[Job], run_id: str | None = None) -> RunAccepted:
        """Start a run in the background.

        Raises:
            RunConflict: A run with this id is in flight
            ValueError: Duplicate job ids
        """
        record = self._register(jobs, run_id)
        task = asyncio.create_task(self._execute(record, list(jobs)), name=f"run:{record.run_id}")
        record.task = task
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

        logger.info("Accepted run {} ({} jobs)", record.run_id, len(jobs))
        return RunAccepted(
            run_id=record.run_id,
            job_count=len(jobs),
            total_batches=record.progress.total_batches,
            stream_url=self._stream_url_template.format(run_id=record.run_id),
        )

    async def run(
        self,
        jobs: Sequence[Job],
        run_id: str | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Run to completion and return the result.

        Args:
            jobs: Jobs in submission order
            run_id: Run identifier (generated if not provided)
            on_progress: Optional callback registered on the run's progress

        Raises:
            RunConflict: A run with this id is in flight
            ValueError: Duplicate job ids
        """
        record = self._register(jobs, run_id)
        if on_progress is not None:
            record.progress.on_progress(on_progress)
        return await self._execute(record, list(jobs))

    def get(self, run_id: str) -> RunRecord | None:
        """Look up a run by id."""
        return self._runs.get(run_id)

    @property
    def active_runs(self) -> list[str]:
        """Ids of runs still in flight."""
        return [run_id for run_id, record in self._runs.items() if record.is_active]

    async def shutdown(self) -> None:
        """Cancel background runs and wait for them to stop."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info("Cancelling {} in-flight runs", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------
    def _register(self, jobs: Sequence[Job], run_id: str | None) -> RunRecord:
        run_id = run_id or new_run_id()
        existing = self._runs.get(run_id)
        if existing is not None and existing.is_active:
            raise RunConflict(run_id)
        check_unique_ids(jobs)

        progress = RunProgress(
            run_id,
            total=len(jobs),
            total_batches=self._scheduler.count_batches(len(jobs)),
        )
        record = RunRecord(run_id=run_id, progress=progress)
        self._runs.pop(run_id, None)
        self._runs[run_id] = record
        self._evict_finished()
        return record

    async def _execute(self, record: RunRecord, jobs: list[Job]) -> RunResult:
        try:
            result = await self._scheduler.execute(jobs, record.run_id, record.progress)
        except asyncio.CancelledError:
            record.error = "Run cancelled"
            raise
        except Exception as e:
            logger.exception("Run {} crashed", record.run_id)
            record.error = str(e) or type(e).__name__
            raise
        record.result = result
        return result

    def _on_task_done(self, task: asyncio.Task[RunResult]) -> None:
        self._tasks.discard(task)
        # mark the exception retrieved; _execute already logged it
        if not task.cancelled():
            task.exception()

    def _evict_finished(self) -> None:
        while len(self._runs) > self._history_size:
            oldest = next(
                (run_id for run_id, record in self._runs.items() if not record.is_active),
                None,
            )
            if oldest is None:
                return
            del self._runs[oldest]
