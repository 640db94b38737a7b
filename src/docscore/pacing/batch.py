"""Batch scheduler for scoring runs.

Splits a run's jobs into fixed-size batches, runs each batch concurrently
through the RetryingCaller, publishes progress to the run's observer and
aggregates one ordered outcome per submitted job.

Run lifecycle:
    CREATED -> RUNNING -> (per batch: dispatch, await, publish) -> COMPLETED | ABORTED

Only ``DailyQuotaExceeded`` aborts a run. With ``continue_on_error`` off, the
first batch containing a failure stops the run as well; the jobs never
started are reported as ``skipped``.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from docscore.config import BatchConfig, get_settings
from docscore.exceptions import DailyQuotaExceeded, DocumentFetchFailure
from docscore.logging import bind_job, bind_run, get_logger
from docscore.schemas import ErrorEvent, ErrorKind, Job, JobOutcome, RunState
from docscore.schemas.events import ProgressEventBase
from docscore.scoring import ScoringService
from docscore.sources import DocumentSource

from .channel import ProgressChannel
from .progress import RunProgress
from .retry import RetryingCaller

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Final result of one run."""

    run_id: str
    state: RunState
    outcomes: list[JobOutcome] = field(default_factory=list)
    """One outcome per submitted job, best score first, failures last."""
    total_batches: int = 0
    abort_reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def total_count(self) -> int:
        """Number of submitted jobs."""
        return len(self.outcomes)

    @property
    def succeeded_count(self) -> int:
        """Number of scored jobs."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_count(self) -> int:
        """Number of failed, aborted or skipped jobs."""
        return self.total_count - self.succeeded_count

    @property
    def aborted(self) -> bool:
        """Whether the run stopped before processing every job."""
        return self.state == RunState.ABORTED

    @property
    def duration_seconds(self) -> float | None:
        """Wall-clock duration, if the run finished."""
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "runId": self.run_id,
            "state": self.state.value,
            "total": self.total_count,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "totalBatches": self.total_batches,
            "abortReason": self.abort_reason,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "durationSeconds": self.duration_seconds,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def rank_outcomes(outcomes: Iterable[JobOutcome]) -> list[JobOutcome]:
    """Order outcomes: successes by score descending, then failures.

    ``outcomes`` must be in submission order; ties keep that order.
    """
    indexed = list(enumerate(outcomes))
    indexed.sort(
        key=lambda item: (
            not item[1].success,
            -(item[1].score or 0.0) if item[1].success else 0.0,
            item[0],
        )
    )
    return [outcome for _, outcome in indexed]


class BatchScheduler:
    """Runs jobs in sequential batches with bounded concurrency.

    Usage:
        scheduler = BatchScheduler(caller, scorer, channel)
        result = await scheduler.execute(jobs, run_id="run-1")

        for outcome in result.outcomes:
            print(outcome.name, outcome.score)
    """

    def __init__(
        self,
        caller: RetryingCaller,
        scorer: ScoringService,
        channel: ProgressChannel | None = None,
        config: BatchConfig | None = None,
        *,
        documents: DocumentSource | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            caller: Rate-limited retrying wrapper used for every scoring call
            scorer: Scoring service
            channel: Optional progress channel for observers
            config: Batch configuration (uses settings if not provided)
            documents: Source used to resolve jobs that carry a source_id
            sleep: Coroutine used between batches (injectable for tests)
        """
        self._caller = caller
        self._scorer = scorer
        self._channel = channel
        self._config = config or get_settings().batch
        self._documents = documents
        self._sleep = sleep

    @property
    def config(self) -> BatchConfig:
        """Get the batch configuration."""
        return self._config

    def count_batches(self, job_count: int) -> int:
        """Number of batches a run of ``job_count`` jobs is split into."""
        return math.ceil(job_count / self._config.batch_size)

    def partition(self, jobs: Sequence[Job]) -> list[list[Job]]:
        """Split jobs into ordered batches of at most ``batch_size``."""
        size = self._config.batch_size
        return [list(jobs[i : i + size]) for i in range(0, len(jobs), size)]

    async def run(self, jobs: Sequence[Job], run_id: str) -> list[JobOutcome]:
        """Run all jobs and return the ordered outcome list."""
        result = await self.execute(jobs, run_id)
        return result.outcomes

    async def execute(
        self,
        jobs: Sequence[Job],
        run_id: str,
        progress: RunProgress | None = None,
    ) -> RunResult:
        """Run all jobs and return the full run result.

        Args:
            jobs: Jobs in submission order; ids must be unique
            run_id: Identifier used for progress publication
            progress: Optional pre-built progress state (for callers that
                observe it while the run is in flight)

        Returns:
            RunResult with one outcome per submitted job

        Raises:
            ValueError: Duplicate job ids
        """
        jobs = list(jobs)
        check_unique_ids(jobs)
        batches = self.partition(jobs)
        log = bind_run(run_id)

        if progress is None:
            progress = RunProgress(run_id, total=len(jobs), total_batches=len(batches))
        result = RunResult(
            run_id=run_id,
            state=RunState.RUNNING,
            total_batches=len(batches),
            started_at=datetime.now(UTC),
        )

        outcomes: dict[str, JobOutcome] = {}
        stop_kind: ErrorKind | None = None
        stop_reason: str | None = None

        progress.start()
        try:
            for index, batch in enumerate(batches, start=1):
                progress.start_batch(index)
                await self._publish(run_id, progress.to_event())
                log.info("Batch {}/{}: {} jobs", index, len(batches), len(batch))

                quota_error = await self._run_batch(batch, run_id, progress, outcomes)

                if quota_error is not None:
                    stop_kind = ErrorKind.RUN_ABORTED
                    stop_reason = str(quota_error)
                    break

                if not self._config.continue_on_error and any(
                    not outcomes[job.id].success for job in batch
                ):
                    stop_kind = ErrorKind.SKIPPED
                    stop_reason = f"Run stopped after batch {index}: a job failed"
                    break

                if index < len(batches) and self._config.delay_between_batches_ms:
                    delay = self._config.delay_between_batches_ms / 1000
                    log.debug("Waiting {:.1f}s before next batch", delay)
                    await self._sleep(delay)
        except asyncio.CancelledError:
            progress.abort("Run cancelled")
            await self._close(run_id)
            raise

        if stop_kind is not None and stop_reason is not None:
            for job in jobs:
                if job.id not in outcomes:
                    outcomes[job.id] = JobOutcome.not_started(job, stop_kind, stop_reason)
            result.state = RunState.ABORTED
            result.abort_reason = stop_reason
            progress.abort(stop_reason)
        else:
            result.state = RunState.COMPLETED
            progress.complete()

        result.outcomes = rank_outcomes(outcomes[job.id] for job in jobs)
        result.completed_at = datetime.now(UTC)

        await self._publish(run_id, progress.to_event())
        if result.abort_reason is not None:
            await self._publish(run_id, ErrorEvent(message=result.abort_reason))
        await self._close(run_id)

        log.info(
            "Run {} {}: {} succeeded, {} failed",
            run_id,
            result.state.value,
            result.succeeded_count,
            result.failed_count,
        )
        return result

    async def _run_batch(
        self,
        batch: list[Job],
        run_id: str,
        progress: RunProgress,
        outcomes: dict[str, JobOutcome],
    ) -> DailyQuotaExceeded | None:
        """Run one batch concurrently, recording outcomes as jobs finish.

        Returns:
            The first DailyQuotaExceeded raised by a job, if any
        """
        tasks = {
            asyncio.create_task(self._process_job(job, run_id), name=f"{run_id}:{job.id}"): job
            for job in batch
        }
        quota_error: DailyQuotaExceeded | None = None
        pending: set[asyncio.Task[JobOutcome]] = set(tasks)

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    job = tasks[task]
                    error = task.exception()
                    if isinstance(error, DailyQuotaExceeded):
                        quota_error = quota_error or error
                        outcome = JobOutcome.from_error(job, error)
                    elif error is not None:
                        logger.opt(exception=error).error("Job {} crashed", job.id)
                        outcome = JobOutcome.from_error(job, error)
                    else:
                        outcome = task.result()

                    outcomes[job.id] = outcome
                    progress.record(outcome)
                    await self._publish(run_id, progress.to_event())
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        return quota_error

    async def _process_job(self, job: Job, run_id: str) -> JobOutcome:
        """Resolve the job's document and score it."""
        log = bind_job(run_id, job.id)

        if job.text is not None:
            text = job.text
        else:
            if self._documents is None or job.source_id is None:
                error = DocumentFetchFailure(f"No document source available for {job.id}")
                return JobOutcome.from_error(job, error)
            try:
                text = await self._documents.fetch_text(job.source_id)
            except DocumentFetchFailure as e:
                log.warning("Could not read document {}: {}", job.source_id, e)
                return JobOutcome.from_error(job, e)

        return await self._caller.call(job, lambda: self._scorer.score(text, job.description))

    async def _publish(self, run_id: str, event: ProgressEventBase) -> None:
        if self._channel is not None:
            await self._channel.publish(run_id, event)

    async def _close(self, run_id: str) -> None:
        if self._channel is not None:
            await self._channel.close(run_id)


def check_unique_ids(jobs: Sequence[Job]) -> None:
    """Raise ValueError if two jobs share an id."""
    seen: set[str] = set()
    for job in jobs:
        if job.id in seen:
            raise ValueError(f"Duplicate job id in run: {job.id}")
        seen.add(job.id)
