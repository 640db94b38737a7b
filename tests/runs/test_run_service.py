"""Tests for RunService: submission, registry and run id conflicts."""

from __future__ import annotations

import asyncio

import pytest

from docscore.exceptions import DocumentFetchFailure, RunConflict
from docscore.pacing import ProgressChannel, ProgressUpdate
from docscore.runs import RunService, new_run_id
from docscore.schemas import RunState
from tests.factories import DESCRIPTION, BlockingScorer, FakeDocuments, FakeScorer, make_job


@pytest.fixture
def documents() -> FakeDocuments:
    return FakeDocuments({"ada.txt": "Ada", "bob.txt": "Bob", "cy.txt": "Cy"})


class TestJobsFromSource:
    """Tests for building jobs from a document source."""

    async def test_one_job_per_document(self, make_scheduler, documents) -> None:
        """Each listed document becomes a referenced job."""
        scheduler, _ = make_scheduler(FakeScorer(), documents=documents)
        service = RunService(scheduler, documents=documents)

        jobs = await service.jobs_from_source(".", DESCRIPTION)

        assert [job.id for job in jobs] == ["ada.txt", "bob.txt", "cy.txt"]
        assert all(job.source_id == job.id and job.text is None for job in jobs)
        assert all(job.description == DESCRIPTION for job in jobs)
        assert documents.fetched == []

    async def test_without_source(self, make_scheduler) -> None:
        """Locator runs need a configured source."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler)

        with pytest.raises(DocumentFetchFailure):
            await service.jobs_from_source(".", DESCRIPTION)


class TestRun:
    """Tests for synchronous runs."""

    async def test_run_returns_result(self, make_scheduler, documents) -> None:
        """run() waits for the ranked result and keeps the record."""
        scorer = FakeScorer({"Ada": 90, "Bob": 40, "Cy": 70})
        scheduler, _ = make_scheduler(scorer, documents=documents)
        service = RunService(scheduler, documents=documents)
        jobs = await service.jobs_from_source(".", DESCRIPTION)

        result = await service.run(jobs, run_id="run-1")

        assert [o.job_id for o in result.outcomes] == ["ada.txt", "cy.txt", "bob.txt"]
        record = service.get("run-1")
        assert record is not None
        assert record.state == RunState.COMPLETED
        assert record.result is result
        assert service.active_runs == []

    async def test_progress_callback(self, make_scheduler) -> None:
        """on_progress receives updates as jobs finish."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler)
        updates: list[ProgressUpdate] = []

        await service.run([make_job("a"), make_job("b")], on_progress=updates.append)

        assert updates[-1].state == RunState.COMPLETED
        assert updates[-1].completed == 2

    async def test_generated_run_id(self, make_scheduler) -> None:
        """A run without an id gets a fresh one."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler)

        result = await service.run([make_job("a")])

        assert len(result.run_id) == 32
        assert result.run_id != new_run_id()

    async def test_duplicate_job_ids(self, make_scheduler) -> None:
        """Duplicate job ids are rejected before the run is registered."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler)

        with pytest.raises(ValueError):
            await service.run([make_job("a"), make_job("a")], run_id="run-1")

        assert service.get("run-1") is None


class TestSubmit:
    """Tests for background runs."""

    async def test_submit_acknowledges(self, make_scheduler) -> None:
        """submit() returns before the run finishes."""
        scorer = BlockingScorer()
        scheduler, _ = make_scheduler(scorer)
        service = RunService(scheduler)

        accepted = await service.submit([make_job(j) for j in "abcd"], run_id="run-1")

        assert accepted.to_dict() == {
            "runId": "run-1",
            "jobCount": 4,
            "totalBatches": 2,
            "streamUrl": "/api/runs/run-1/stream",
        }
        assert service.active_runs == ["run-1"]

        scorer.release.set()
        record = service.get("run-1")
        assert record is not None and record.task is not None
        result = await record.task

        assert result.succeeded_count == 4
        assert service.active_runs == []

    async def test_conflicting_run_id(self, make_scheduler) -> None:
        """A second run with an in-flight id is refused."""
        scorer = BlockingScorer()
        scheduler, _ = make_scheduler(scorer)
        service = RunService(scheduler)
        await service.submit([make_job("a")], run_id="run-1")

        with pytest.raises(RunConflict):
            await service.submit([make_job("b")], run_id="run-1")

        scorer.release.set()
        await service.shutdown()

    async def test_finished_id_can_be_reused(self, make_scheduler) -> None:
        """Once a run finished its id is free again."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler)
        await service.run([make_job("a")], run_id="run-1")

        result = await service.run([make_job("b")], run_id="run-1")

        assert [o.job_id for o in result.outcomes] == ["b"]

    async def test_progress_while_running(self, make_scheduler) -> None:
        """Status is queryable while the run is in flight."""
        scorer = BlockingScorer()
        scheduler, _ = make_scheduler(scorer)
        service = RunService(scheduler)
        await service.submit([make_job("a"), make_job("b")], run_id="run-1")
        await asyncio.sleep(0)

        record = service.get("run-1")
        assert record is not None
        data = record.to_dict()
        assert data["state"] == "running"
        assert data["progress"]["total"] == 2
        assert data["result"] is None

        scorer.release.set()
        await record.task
        assert service.get("run-1").to_dict()["result"]["succeeded"] == 2

    async def test_shutdown_cancels_runs(self, make_scheduler) -> None:
        """shutdown() cancels in-flight runs and records the cancellation."""
        scheduler, _ = make_scheduler(BlockingScorer())
        service = RunService(scheduler)
        await service.submit([make_job("a")], run_id="run-1")
        await asyncio.sleep(0)

        await service.shutdown()

        record = service.get("run-1")
        assert record is not None
        assert record.error == "Run cancelled"
        assert record.state == RunState.ABORTED
        assert service.active_runs == []

    async def test_submit_publishes_to_channel(
        self, make_scheduler, channel: ProgressChannel
    ) -> None:
        """A subscriber registered before submission sees the whole run."""
        scheduler, _ = make_scheduler(FakeScorer(), channel=channel)
        service = RunService(scheduler)
        sink = await channel.subscribe("run-1", keepalive=False)

        accepted = await service.submit([make_job("a")], run_id="run-1")
        await service.get(accepted.run_id).task

        types = [event.type async for event in sink]
        assert types[0] == "connected"
        assert types[-1] == "complete"


class TestHistory:
    """Tests for the finished-run registry bound."""

    async def test_oldest_finished_runs_evicted(self, make_scheduler) -> None:
        """Only history_size runs are remembered."""
        scheduler, _ = make_scheduler(FakeScorer())
        service = RunService(scheduler, history_size=2)

        for run_id in ("r1", "r2", "r3"):
            await service.run([make_job("a")], run_id=run_id)

        assert service.get("r1") is None
        assert service.get("r2") is not None
        assert service.get("r3") is not None
