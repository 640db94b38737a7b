"""Rate limiting for the scoring service.

This module provides the process-wide dual-window limiter that every run
shares, plus read-only status snapshots for observability.
"""

from .limiter import RateLimiter, utc_now
from .schemas import QuotaUsage, RateLimiterStatus, RateLimitStatus

__all__ = [
    "QuotaUsage",
    "RateLimitStatus",
    "RateLimiter",
    "RateLimiterStatus",
    "utc_now",
]
