from __future__ import annotations

import math

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilience_core.circuit_breaker import CircuitBreakerConfig
from resilience_core.logging import get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven thresholds for one circuit breaker.

    Services guarding several dependencies subclass this and set
    ``model_config = prefixed_settings_config("PAYMENTS_BREAKER_")`` per
    dependency.
    """

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    failure_threshold: int = 5
    recovery_successes: int = 10
    failure_gap: float = 60.0
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    log_level: str = "INFO"

    @field_validator(
        "failure_threshold",
        "recovery_successes",
        "success_threshold",
    )
    @classmethod
    def _validate_positive_count(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("failure_gap", "recovery_timeout")
    @classmethod
    def _validate_non_negative_seconds(
        cls, value: float, info: ValidationInfo
    ) -> float:
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"{info.field_name} must be a finite number >= 0")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def to_config(self) -> CircuitBreakerConfig:
        """Build the breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            recovery_successes=self.recovery_successes,
            failure_gap=self.failure_gap,
            recovery_timeout=self.recovery_timeout,
            success_threshold=self.success_threshold,
        )
