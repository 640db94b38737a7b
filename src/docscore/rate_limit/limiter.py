"""Dual-window rate limiter for the scoring service.

Enforces two independent quotas:
- a rolling window (per minute) that admits at most ``requests_per_minute``
  requests, spaced evenly instead of bursting at the start of each window;
- a calendar-day counter that admits at most ``requests_per_day`` requests
  and resets the first time it is checked on a new day.

Algorithm (per acquire, under a FIFO lock):
    reset day counter if the date changed
    prune window timestamps older than the window
    day counter at quota      -> raise DailyQuotaExceeded
    window full               -> sleep max(min_wait, window - age(oldest)), recheck
    spacing since last < gap  -> sleep remaining gap, recheck
    record now
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from docscore.config import RateLimitConfig, get_settings
from docscore.exceptions import DailyQuotaExceeded
from docscore.logging import get_logger

from .schemas import QuotaUsage, RateLimiterStatus

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[Any]]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(UTC)


class RateLimiter:
    """Process-wide limiter shared by every run.

    All state lives behind ``acquire()`` and ``status()``; callers never see
    the raw counters. Concurrent callers queue on an ``asyncio.Lock`` and are
    admitted one at a time, first come first served.

    Usage:
        limiter = RateLimiter()

        # Before each scoring call
        await limiter.acquire()  # may sleep; raises DailyQuotaExceeded

        # Observability only
        print(limiter.status().to_display())
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            config: Optional quota configuration (uses settings if not provided)
            clock: Returns the current time; its date drives the daily reset
            sleep: Coroutine used to suspend callers (injectable for tests)
        """
        self._config = config or get_settings().rate_limit
        self._clock = clock
        self._sleep = sleep

        self._window = timedelta(seconds=self._config.window_seconds)
        self._min_spacing = timedelta(milliseconds=self._config.min_spacing_ms)
        self._min_wait = timedelta(milliseconds=self._config.min_wait_ms)

        # State
        self._timestamps: deque[datetime] = deque()
        self._last_request_at: datetime | None = None
        self._day_count = 0
        self._day: date = self._clock().date()

        # Admission is serialized through this lock
        self._lock = asyncio.Lock()

        logger.info(
            "Rate limiter initialized: {} RPM, {} RPD (spacing {}ms)",
            self._config.requests_per_minute,
            self._config.requests_per_day,
            self._config.min_spacing_ms,
        )

    @property
    def config(self) -> RateLimitConfig:
        """Get the rate limit configuration."""
        return self._config

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------
    async def acquire(self) -> datetime:
        """Wait until a request may be made, then record it.

        Returns:
            The recorded admission time

        Raises:
            DailyQuotaExceeded: The day's quota is used up. Raised without
                waiting; the caller must not retry within the same day.
        """
        async with self._lock:
            while True:
                now = self._clock()
                self._reset_day_if_needed(now)
                self._prune(now)

                if self._day_count >= self._config.requests_per_day:
                    logger.warning(
                        "Daily quota exhausted ({}/{})",
                        self._day_count,
                        self._config.requests_per_day,
                    )
                    raise DailyQuotaExceeded(self._config.requests_per_day, self._day)

                if len(self._timestamps) >= self._config.requests_per_minute:
                    wait = max(self._min_wait, self._window - (now - self._timestamps[0]))
                    logger.info(
                        "Minute quota reached ({}/{}), waiting {:.1f}s",
                        len(self._timestamps),
                        self._config.requests_per_minute,
                        wait.total_seconds(),
                    )
                    await self._sleep(wait.total_seconds())
                    continue

                if self._last_request_at is not None:
                    elapsed = now - self._last_request_at
                    if elapsed < self._min_spacing:
                        gap = self._min_spacing - elapsed
                        logger.debug("Spacing requests, waiting {:.2f}s", gap.total_seconds())
                        await self._sleep(gap.total_seconds())
                        continue

                self._record(now)
                return now

    def _reset_day_if_needed(self, now: datetime) -> None:
        today = now.date()
        if today != self._day:
            logger.info("Daily counter reset for {} (was {} on {})", today, self._day_count, self._day)
            self._day = today
            self._day_count = 0

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _record(self, now: datetime) -> None:
        self._timestamps.append(now)
        self._last_request_at = now
        self._day_count += 1
        logger.debug(
            "Request admitted: {}/{} today, {}/{} this minute",
            self._day_count,
            self._config.requests_per_day,
            len(self._timestamps),
            self._config.requests_per_minute,
        )

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    def status(self) -> RateLimiterStatus:
        """Snapshot current usage against both quotas.

        Does not take the lock and does not mutate state; the numbers may be
        stale by the time they are read, so never use them for admission.
        """
        now = self._clock()
        cutoff = now - self._window
        in_window = [t for t in self._timestamps if t > cutoff]

        day_used = self._day_count if now.date() == self._day else 0

        slot_wait = 0.0
        if len(in_window) >= self._config.requests_per_minute:
            slot_wait = max(0.0, (self._window - (now - in_window[0])).total_seconds())

        day = QuotaUsage(limit=self._config.requests_per_day, used=day_used)
        return RateLimiterStatus(
            minute=QuotaUsage(limit=self._config.requests_per_minute, used=len(in_window)),
            day=day,
            day_status=day.get_status(
                self._config.healthy_threshold_pct,
                self._config.warning_threshold_pct,
                self._config.critical_threshold_pct,
            ),
            current_date=now.date(),
            seconds_until_window_slot=slot_wait,
            min_spacing_seconds=self._min_spacing.total_seconds(),
        )

    @property
    def last_request_at(self) -> datetime | None:
        """Time of the most recent admission."""
        return self._last_request_at

    def to_dict(self) -> dict[str, Any]:
        """Export current state as dictionary (for logging/metrics)."""
        status = self.status()
        return {
            **status.model_dump(mode="json"),
            **status.to_display(),
            "last_request_at": (
                self._last_request_at.isoformat() if self._last_request_at else None
            ),
        }

    def reset(self) -> None:
        """Forget all recorded requests (operator/testing use)."""
        self._timestamps.clear()
        self._last_request_at = None
        self._day_count = 0
        self._day = self._clock().date()
        logger.info("Rate limiter state reset")
