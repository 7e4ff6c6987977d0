from __future__ import annotations

import pytest
from pydantic import ValidationError

from resilience_core.circuit_breaker import CircuitBreakerConfig
from resilience_core.settings import BreakerSettings, prefixed_settings_config


@pytest.fixture(autouse=True)
def _clear_breaker_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for field in BreakerSettings.model_fields:
        monkeypatch.delenv(f"CIRCUIT_BREAKER_{field.upper()}", raising=False)


def test_breaker_settings_defaults_match_config_defaults() -> None:
    settings = BreakerSettings()

    assert settings.to_config() == CircuitBreakerConfig()
    assert settings.log_level == "INFO"


def test_breaker_settings_reads_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "3")
    monkeypatch.setenv("CIRCUIT_BREAKER_RECOVERY_SUCCESSES", "10")
    monkeypatch.setenv("circuit_breaker_failure_gap", "5")
    monkeypatch.setenv("CIRCUIT_BREAKER_RECOVERY_TIMEOUT", "2.5")
    monkeypatch.setenv("CIRCUIT_BREAKER_SUCCESS_THRESHOLD", "2")

    config = BreakerSettings().to_config()

    assert config == CircuitBreakerConfig(
        failure_threshold=3,
        recovery_successes=10,
        failure_gap=5.0,
        recovery_timeout=2.5,
        success_threshold=2,
    )


def test_breaker_settings_normalizes_log_level() -> None:
    settings = BreakerSettings(log_level=" debug ")

    assert settings.log_level == "DEBUG"


def test_breaker_settings_rejects_unknown_log_level() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(log_level="TRACE")


@pytest.mark.parametrize(
    "field",
    ["failure_threshold", "recovery_successes", "success_threshold"],
)
def test_breaker_settings_rejects_non_positive_counts(field: str) -> None:
    with pytest.raises(ValidationError, match=field):
        BreakerSettings(**{field: 0})


@pytest.mark.parametrize("field", ["failure_gap", "recovery_timeout"])
def test_breaker_settings_rejects_negative_seconds(field: str) -> None:
    with pytest.raises(ValidationError, match=field):
        BreakerSettings(**{field: -1})


def test_prefixed_settings_subclass_reads_its_own_prefix(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    class PaymentsBreakerSettings(BreakerSettings):
        model_config = prefixed_settings_config("PAYMENTS_BREAKER_")

    monkeypatch.setenv("PAYMENTS_BREAKER_FAILURE_THRESHOLD", "7")
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "2")

    assert PaymentsBreakerSettings().failure_threshold == 7
    assert BreakerSettings().failure_threshold == 2


@pytest.mark.parametrize("value", ["nan", "inf", "-inf"])
@pytest.mark.parametrize("field", ["failure_gap", "recovery_timeout"])
def test_breaker_settings_rejects_non_finite_seconds(
    monkeypatch: pytest.MonkeyPatch, field: str, value: str
) -> None:
    monkeypatch.setenv(f"CIRCUIT_BREAKER_{field.upper()}", value)

    with pytest.raises(ValidationError, match=field):
        BreakerSettings()


def test_breaker_settings_rejects_fractional_counts() -> None:
    with pytest.raises(ValidationError, match="failure_threshold"):
        BreakerSettings(failure_threshold=2.5)
