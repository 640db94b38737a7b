"""Pydantic schemas for rate limiter observability.

These are read-only snapshots; admission decisions always re-check the
limiter's live state.
"""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field, computed_field


class RateLimitStatus(StrEnum):
    """Rate limit health status.

    Used to categorize the current state of the daily quota.
    Thresholds are configurable but defaults are:
    - HEALTHY: > 50% remaining
    - WARNING: 20-50% remaining
    - CRITICAL: 5-20% remaining
    - EXHAUSTED: 0 remaining
    """

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    EXHAUSTED = "exhausted"


class QuotaUsage(BaseModel):
    """Usage of one quota (the rolling minute window or the calendar day)."""

    limit: int = Field(ge=1, description="Maximum requests allowed")
    used: int = Field(ge=0, description="Requests recorded against the quota")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining(self) -> int:
        """Requests still available."""
        return max(0, self.limit - self.used)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def usage_percent(self) -> float:
        """Percentage of the quota consumed (0.0 to 100.0)."""
        return min(100.0, (self.used / self.limit) * 100)

    @property
    def remaining_percent(self) -> float:
        """Percentage of the quota remaining (0.0 to 100.0)."""
        return 100.0 - self.usage_percent

    def get_status(
        self,
        healthy_threshold: float = 50.0,
        warning_threshold: float = 20.0,
        critical_threshold: float = 5.0,
    ) -> RateLimitStatus:
        """Determine quota health status.

        Args:
            healthy_threshold: % remaining above which is HEALTHY
            warning_threshold: % remaining above which is WARNING (below healthy)
            critical_threshold: % remaining above which is CRITICAL (below warning)

        Returns:
            RateLimitStatus enum value
        """
        if self.remaining == 0:
            return RateLimitStatus.EXHAUSTED
        if self.remaining_percent >= healthy_threshold:
            return RateLimitStatus.HEALTHY
        if self.remaining_percent >= warning_threshold:
            return RateLimitStatus.WARNING
        return RateLimitStatus.CRITICAL


class RateLimiterStatus(BaseModel):
    """Point-in-time view of both quotas."""

    minute: QuotaUsage = Field(description="Requests in the trailing window")
    day: QuotaUsage = Field(description="Requests on the current calendar day")
    day_status: RateLimitStatus = Field(description="Health of the daily quota")
    current_date: date = Field(description="Calendar day the day counter belongs to")
    seconds_until_window_slot: float = Field(
        ge=0,
        description="Seconds until the minute window admits another request",
    )
    min_spacing_seconds: float = Field(
        ge=0,
        description="Minimum spacing enforced between admitted requests",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_request(self) -> bool:
        """Whether a request could be admitted right now (ignoring spacing)."""
        return self.day.remaining > 0 and self.minute.remaining > 0

    def to_display(self) -> dict[str, str]:
        """Compact usage strings such as ``'3/180'``."""
        return {
            "daily_usage": f"{self.day.used}/{self.day.limit}",
            "minute_usage": f"{self.minute.used}/{self.minute.limit}",
        }
