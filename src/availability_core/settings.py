from __future__ import annotations

import math
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from availability_core.circuit_breaker import CircuitBreakerConfig
from availability_core.logging import get_log_level_value
from availability_core.retry import RetryBackoffPolicy


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class LoggingSettings(BaseSettings):
    """Process-wide logging settings."""

    model_config = SettingsConfigDict(case_sensitive=False)

    log_level: str = "INFO"
    service_name: str | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()


class BreakerSettings(BaseSettings):
    """Circuit breaker settings for one protected write path."""

    model_config = prefixed_settings_config("BREAKER_")

    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    successes_to_close: int = 3

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if not math.isfinite(self.cooldown_seconds):
            raise ValueError("cooldown_seconds must be finite")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        if self.successes_to_close < 1:
            raise ValueError("successes_to_close must be >= 1")
        return self

    def to_config(self) -> CircuitBreakerConfig:
        """Build the breaker configuration these settings describe."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            cooldown=self.cooldown_seconds,
            successes_to_close=self.successes_to_close,
        )


class MembershipSettings(BaseSettings):
    """Settings for building, persisting and loading the membership filter."""

    model_config = prefixed_settings_config("MEMBERSHIP_")

    false_positive_rate: float = 0.01
    filter_path: Path = Path("bloom-filter.json")
    page_size: int = 10_000
    scan_retry_attempts: int | None = 5
    scan_retry_min_seconds: float = 0.5
    scan_retry_max_seconds: float = 10.0

    @model_validator(mode="after")
    def _validate_membership_settings(self) -> MembershipSettings:
        if not 0.0 < self.false_positive_rate < 1.0:
            raise ValueError("false_positive_rate must be in (0, 1)")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.scan_retry_attempts is not None and self.scan_retry_attempts < 1:
            raise ValueError("scan_retry_attempts must be >= 1 when provided")
        if self.scan_retry_min_seconds < 0:
            raise ValueError("scan_retry_min_seconds must be >= 0")
        if self.scan_retry_max_seconds < self.scan_retry_min_seconds:
            raise ValueError(
                "scan_retry_max_seconds must be >= scan_retry_min_seconds"
            )
        return self

    def retry_policy(self) -> RetryBackoffPolicy:
        """Build the backoff policy used for paging the key source."""
        return RetryBackoffPolicy(
            attempts=self.scan_retry_attempts,
            min_seconds=self.scan_retry_min_seconds,
            max_seconds=self.scan_retry_max_seconds,
        )
