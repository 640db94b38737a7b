"""HTTP routes: run submission, run status, progress stream, limiter status."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from docscore.exceptions import DocumentFetchFailure, RunConflict, SubscriberConflict
from docscore.logging import get_logger
from docscore.pacing import ProgressChannel, QueueSink
from docscore.rate_limit import RateLimiter
from docscore.runs import RunService

from .schemas import RunRequest

logger = get_logger(__name__)

router = APIRouter(tags=["runs"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _service(request: Request) -> RunService:
    return request.app.state.service


def _channel(request: Request) -> ProgressChannel:
    return request.app.state.channel


def _limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


@router.post("/runs")
async def submit_run(request: Request, payload: dict[str, Any]) -> JSONResponse:
    try:
        body = RunRequest.model_validate(payload)
        jobs = body.build_jobs()
    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    service = _service(request)
    if body.locator is not None and body.description is not None:
        try:
            jobs = await service.jobs_from_source(body.locator, body.description)
        except DocumentFetchFailure as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        if request.app.state.settings.server.run_mode == "sync":
            result = await service.run(jobs, body.run_id)
            return JSONResponse(result.to_dict())
        accepted = await service.submit(jobs, body.run_id)
    except RunConflict as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return JSONResponse(accepted.to_dict(), status_code=202)


@router.get("/runs/{run_id}")
async def get_run(request: Request, run_id: str) -> dict[str, Any]:
    record = _service(request).get(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown run {run_id}")
    return record.to_dict()


@router.get("/runs/{run_id}/stream")
async def stream_run(request: Request, run_id: str) -> StreamingResponse:
    """Server-sent progress events for one run.

    Observers may subscribe before the run is submitted. A finished run gets
    ``connected`` followed directly by ``complete``.
    """
    channel = _channel(request)
    sink = QueueSink()
    try:
        await channel.subscribe(run_id, sink)
    except SubscriberConflict as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    record = _service(request).get(run_id)
    if record is not None and not record.is_active:
        await channel.close(run_id)

    async def events() -> AsyncIterator[str]:
        try:
            async for event in sink:
                yield event.to_sse()
        finally:
            if channel.unsubscribe(run_id, sink):
                logger.info("Observer of run {} disconnected", run_id)

    return StreamingResponse(events(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.get("/rate-limit")
async def rate_limit_status(request: Request) -> dict[str, Any]:
    return _limiter(request).to_dict()
