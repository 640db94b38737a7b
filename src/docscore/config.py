"""Configuration settings for docscore."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Configuration for the dual-window rate limiter.

    Quotas mirror the downstream scoring service's hard limits. The
    threshold percentages only affect the reported status, never admission.
    """

    requests_per_minute: int = Field(
        default=12,
        ge=1,
        description="Maximum requests admitted in any trailing window",
    )
    requests_per_day: int = Field(
        default=180,
        ge=1,
        description="Maximum requests admitted per calendar day",
    )
    retry_delay_ms: int = Field(
        default=60000,
        ge=0,
        description="Base delay before retrying a quota-rejected request",
    )
    min_wait_ms: int = Field(
        default=1000,
        ge=0,
        description="Lower bound for a wait on a full minute window",
    )
    window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Length of the rolling request window",
    )

    # Threshold percentages for status determination
    healthy_threshold_pct: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="% of daily quota remaining above which status is HEALTHY",
    )
    warning_threshold_pct: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="% remaining above which status is WARNING (below healthy)",
    )
    critical_threshold_pct: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="% remaining above which status is CRITICAL (below warning)",
    )

    @property
    def min_spacing_ms(self) -> int:
        """Minimum milliseconds between two admitted requests."""
        return -(-int(self.window_seconds * 1000) // self.requests_per_minute)


class RetryConfig(BaseModel):
    """Configuration for retrying transient quota rejections."""

    max_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempts in total before a job is marked failed",
    )
    retry_delay_ms: int | None = Field(
        default=None,
        ge=0,
        description="Delay between attempts (defaults to rate_limit.retry_delay_ms)",
    )


class BatchConfig(BaseModel):
    """Configuration for batch scheduling.

    Controls batch size, pacing between batches and error behavior.
    """

    batch_size: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Jobs processed concurrently per batch",
    )
    delay_between_batches_ms: int = Field(
        default=5000,
        ge=0,
        description="Pause between consecutive batches",
    )
    continue_on_error: bool = Field(
        default=True,
        description="Keep launching batches after a job failure",
    )


class ProgressConfig(BaseModel):
    """Configuration for the progress channel."""

    keepalive_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between ping events on an open stream",
    )
    duplicate_subscriber_policy: Literal["replace", "reject"] = Field(
        default="replace",
        description="What to do when a second observer subscribes to the same run",
    )


class ScoringConfig(BaseModel):
    """Configuration for the HTTP scoring service client."""

    endpoint_url: str = Field(
        default="http://localhost:8080/score",
        description="URL receiving POSTed scoring requests",
    )
    api_key: str = Field(
        default="",
        description="Bearer token sent to the scoring service",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout for one scoring call",
    )
    max_document_chars: int = Field(
        default=2000,
        ge=100,
        description="Documents longer than this are truncated before scoring",
    )
    weights: dict[str, float] = Field(
        default_factory=lambda: {
            "skills": 0.35,
            "experience": 0.35,
            "education": 0.15,
            "projects": 0.15,
        },
        description="Subscore weights used when the service omits a total score",
    )


class ServerConfig(BaseModel):
    """Configuration for the HTTP API."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")
    run_mode: Literal["async", "sync"] = Field(
        default="async",
        description="async: accept and stream progress; sync: respond with results",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed to call the API",
    )
    documents_root: str = Field(
        default=".",
        description="Root directory for locator-based runs",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Rate Limiting & Scheduling
    # --------------------------------------------------------------------------
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Rate limiter quotas",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry behavior for quota rejections",
    )
    batch: BatchConfig = Field(
        default_factory=BatchConfig,
        description="Batch scheduling configuration",
    )
    progress: ProgressConfig = Field(
        default_factory=ProgressConfig,
        description="Progress streaming configuration",
    )

    # --------------------------------------------------------------------------
    # Collaborators
    # --------------------------------------------------------------------------
    scoring: ScoringConfig = Field(
        default_factory=ScoringConfig,
        description="Scoring service client configuration",
    )
    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="HTTP API configuration",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )

    @property
    def retry_delay_ms(self) -> int:
        """Effective delay between retry attempts."""
        if self.retry.retry_delay_ms is not None:
            return self.retry.retry_delay_ms
        return self.rate_limit.retry_delay_ms


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
