"""Retrying wrapper around a single job's scoring call.

Every attempt goes through the shared RateLimiter first. Only transient
rejections from the scoring service are retried; every other failure is
turned into a failed JobOutcome at the job boundary.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from docscore.config import RetryConfig, get_settings
from docscore.exceptions import DailyQuotaExceeded, ScoringTransientRejection
from docscore.logging import get_logger
from docscore.rate_limit import RateLimiter
from docscore.schemas import Job, JobOutcome, ScoreResult

logger = get_logger(__name__)

ScoringCall = Callable[[], Awaitable[ScoreResult]]


class RetryingCaller:
    """Runs one job's scoring call with rate limiting and bounded retry.

    Usage:
        caller = RetryingCaller(limiter)
        outcome = await caller.call(job, lambda: scorer.score(text, job.description))

    ``DailyQuotaExceeded`` and cancellation propagate; anything else ends
    up on the returned outcome.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        config: RetryConfig | None = None,
        *,
        retry_delay_ms: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the caller.

        Args:
            limiter: Shared rate limiter acquired before every attempt
            config: Retry configuration (uses settings if not provided)
            retry_delay_ms: Delay override; defaults to the configured delay
            sleep: Coroutine used for retry delays (injectable for tests)
        """
        self._limiter = limiter
        self._config = config or get_settings().retry
        if retry_delay_ms is not None:
            self._retry_delay_ms = retry_delay_ms
        elif self._config.retry_delay_ms is not None:
            self._retry_delay_ms = self._config.retry_delay_ms
        else:
            self._retry_delay_ms = limiter.config.retry_delay_ms
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        """Attempts allowed per job, first attempt included."""
        return self._config.max_retries

    @property
    def retry_delay_seconds(self) -> float:
        """Base delay between attempts."""
        return self._retry_delay_ms / 1000

    async def call(self, job: Job, work: ScoringCall) -> JobOutcome:
        """Score one job.

        Args:
            job: The job being scored
            work: Zero-argument coroutine factory making exactly one scoring call

        Returns:
            JobOutcome for the job (success or isolated failure)

        Raises:
            DailyQuotaExceeded: The limiter's daily quota is exhausted
        """
        attempts = 0
        while True:
            await self._limiter.acquire()
            attempts += 1
            try:
                result = await work()
            except ScoringTransientRejection as e:
                if attempts >= self._config.max_retries:
                    logger.warning(
                        "Job {} rejected {} times, giving up: {}", job.id, attempts, e
                    )
                    return JobOutcome.from_error(job, e, attempts=attempts)
                delay = max(self.retry_delay_seconds, e.retry_after or 0.0)
                logger.info(
                    "Job {} rejected by scoring service (attempt {}/{}), retrying in {:.1f}s",
                    job.id,
                    attempts,
                    self._config.max_retries,
                    delay,
                )
                await self._sleep(delay)
                continue
            except DailyQuotaExceeded:
                raise
            except Exception as e:
                logger.warning("Job {} failed: {}", job.id, e)
                return JobOutcome.from_error(job, e, attempts=attempts)

            logger.debug("Job {} scored {} after {} attempt(s)", job.id, result.total_score, attempts)
            return JobOutcome.from_result(job, result, attempts=attempts)
