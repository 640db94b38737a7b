"""FastAPI application wiring the limiter, channel, scheduler and run service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docscore import __version__
from docscore.config import Settings, get_settings
from docscore.logging import get_logger
from docscore.pacing import BatchScheduler, ProgressChannel, RetryingCaller
from docscore.rate_limit import RateLimiter
from docscore.runs import RunService
from docscore.scoring import HttpScoringClient, ScoringService
from docscore.sources import DocumentSource, LocalDocumentSource

from . import routes

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Shutdown: stop runs, close streams and the scoring client
    await app.state.service.shutdown()
    await app.state.channel.shutdown()
    close = getattr(app.state.scorer, "close", None)
    if close is not None:
        await close()
    logger.info("docscore API stopped")


def create_app(
    settings: Settings | None = None,
    *,
    limiter: RateLimiter | None = None,
    scorer: ScoringService | None = None,
    documents: DocumentSource | None = None,
    channel: ProgressChannel | None = None,
) -> FastAPI:
    """Build the API application.

    Collaborators not passed in are built from settings. The limiter is
    shared by every run the application starts.
    """
    settings = settings or get_settings()
    limiter = limiter or RateLimiter(settings.rate_limit)
    scorer = scorer or HttpScoringClient(settings.scoring)
    documents = documents or LocalDocumentSource(settings.server.documents_root)
    channel = channel or ProgressChannel(settings.progress)

    caller = RetryingCaller(limiter, settings.retry)
    scheduler = BatchScheduler(
        caller,
        scorer,
        channel,
        settings.batch,
        documents=documents,
    )

    app = FastAPI(title="docscore API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.limiter = limiter
    app.state.scorer = scorer
    app.state.channel = channel
    app.state.service = RunService(scheduler, documents=documents)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "docscore API",
                "docs": "/docs",
                "health": "/api/rate-limit",
            }
        )

    return app


app = create_app()
