"""Pytest configuration and shared fixtures.

Usage Guide:
- Time-dependent components take the ``clock`` / ``fake_sleep`` fixtures
- Scheduling tests build their pipeline with ``make_scheduler``
- Fakes and factories live in tests.factories
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest

from docscore.config import (
    BatchConfig,
    ProgressConfig,
    RateLimitConfig,
    RetryConfig,
    get_settings,
)
from docscore.logging import reset_logging
from docscore.pacing import BatchScheduler, ProgressChannel, RetryingCaller
from docscore.rate_limit import RateLimiter
from tests.factories import FakeClock, FakeScorer, FakeSleep


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Settings are cached process-wide; keep env changes test-local."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    """Sleep that advances ``clock`` instead of waiting."""
    return FakeSleep(clock)


@pytest.fixture
def fast_limits() -> RateLimitConfig:
    """Quotas high enough that spacing is 1ms and the day never runs out."""
    return RateLimitConfig(requests_per_minute=60000, requests_per_day=100000)


@pytest.fixture
def logging_reset() -> Iterator[None]:
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def make_scheduler(
    clock: FakeClock,
    fake_sleep: FakeSleep,
    fast_limits: RateLimitConfig,
) -> Callable[..., tuple[BatchScheduler, FakeSleep]]:
    """Factory building a scheduler on fake time.

    Returns the scheduler and the sleep used between batches.
    """

    def _make(
        scorer: FakeScorer,
        *,
        channel: ProgressChannel | None = None,
        limits: RateLimitConfig | None = None,
        batch: BatchConfig | None = None,
        retry: RetryConfig | None = None,
        **kwargs: Any,
    ) -> tuple[BatchScheduler, FakeSleep]:
        limiter = RateLimiter(limits or fast_limits, clock=clock, sleep=fake_sleep)
        caller = RetryingCaller(
            limiter,
            retry or RetryConfig(max_retries=3),
            retry_delay_ms=1000,
            sleep=fake_sleep,
        )
        batch_sleep = FakeSleep()
        scheduler = BatchScheduler(
            caller,
            scorer,
            channel,
            batch or BatchConfig(batch_size=3, delay_between_batches_ms=5000),
            sleep=batch_sleep,
            **kwargs,
        )
        return scheduler, batch_sleep

    return _make


@pytest.fixture
def channel() -> ProgressChannel:
    return ProgressChannel(ProgressConfig(keepalive_interval_seconds=3600))
