"""Tests for configuration settings."""

import pytest
from pydantic import ValidationError

from docscore.config import (
    BatchConfig,
    ProgressConfig,
    RateLimitConfig,
    RetryConfig,
    Settings,
    get_settings,
)


class TestSettings:
    """Tests for Settings class."""

    def test_defaults(self) -> None:
        """Defaults mirror the scoring service's published quotas."""
        settings = Settings(_env_file=None)

        assert settings.environment == "development"
        assert settings.log_level == "INFO"
        assert settings.rate_limit.requests_per_minute == 12
        assert settings.rate_limit.requests_per_day == 180
        assert settings.retry.max_retries == 3
        assert settings.batch.batch_size == 3
        assert settings.batch.delay_between_batches_ms == 5000
        assert settings.batch.continue_on_error is True
        assert settings.progress.keepalive_interval_seconds == 30.0
        assert settings.progress.duplicate_subscriber_policy == "replace"
        assert settings.server.run_mode == "async"

    def test_nested_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested sections are set with a double-underscore delimiter."""
        monkeypatch.setenv("RATE_LIMIT__REQUESTS_PER_MINUTE", "30")
        monkeypatch.setenv("BATCH__BATCH_SIZE", "5")
        monkeypatch.setenv("BATCH__CONTINUE_ON_ERROR", "false")
        monkeypatch.setenv("SCORING__API_KEY", "secret")
        monkeypatch.setenv("SERVER__RUN_MODE", "sync")

        settings = Settings(_env_file=None)

        assert settings.rate_limit.requests_per_minute == 30
        assert settings.batch.batch_size == 5
        assert settings.batch.continue_on_error is False
        assert settings.scoring.api_key == "secret"
        assert settings.server.run_mode == "sync"

    def test_invalid_log_level_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An unknown log level fails validation."""
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_invalid_policy_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The duplicate subscriber policy is either replace or reject."""
        monkeypatch.setenv("PROGRESS__DUPLICATE_SUBSCRIBER_POLICY", "merge")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_retry_delay_falls_back_to_rate_limit(self) -> None:
        """Without an explicit retry delay the rate limit delay applies."""
        settings = Settings(_env_file=None)
        assert settings.retry_delay_ms == 60000

        settings = Settings(_env_file=None, retry=RetryConfig(retry_delay_ms=250))
        assert settings.retry_delay_ms == 250

    def test_get_settings_is_cached(self) -> None:
        """get_settings returns the same instance until the cache is cleared."""
        assert get_settings() is get_settings()


class TestRateLimitConfig:
    """Tests for RateLimitConfig."""

    def test_min_spacing_is_window_over_quota(self) -> None:
        """12 RPM spaces requests 5 seconds apart."""
        assert RateLimitConfig().min_spacing_ms == 5000

    def test_min_spacing_rounds_up(self) -> None:
        """Spacing is rounded up so the window is never overrun."""
        assert RateLimitConfig(requests_per_minute=7).min_spacing_ms == 8572

    @pytest.mark.parametrize(
        "field",
        ["requests_per_minute", "requests_per_day"],
    )
    def test_quotas_must_be_positive(self, field: str) -> None:
        """A zero quota is rejected."""
        with pytest.raises(ValidationError):
            RateLimitConfig(**{field: 0})


class TestSchedulingConfig:
    """Tests for batch, retry and progress configuration bounds."""

    def test_batch_size_bounds(self) -> None:
        """batch_size must be between 1 and 100."""
        with pytest.raises(ValidationError):
            BatchConfig(batch_size=0)
        with pytest.raises(ValidationError):
            BatchConfig(batch_size=101)

    def test_max_retries_at_least_one(self) -> None:
        """At least the first attempt is always made."""
        with pytest.raises(ValidationError):
            RetryConfig(max_retries=0)

    def test_keepalive_positive(self) -> None:
        """The keepalive interval must be positive."""
        with pytest.raises(ValidationError):
            ProgressConfig(keepalive_interval_seconds=0)
