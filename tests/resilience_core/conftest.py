from __future__ import annotations

import pytest

from resilience_core.circuit_breaker import ManualClock
from tests.resilience_core.support.breaker_fakes import (
    FakeLogger,
    Operation,
    RecordingListener,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock() -> ManualClock:
    """Provide a manual clock starting at zero."""
    return ManualClock()


@pytest.fixture
def operation() -> Operation:
    """Provide a protected operation double that succeeds by default."""
    return Operation()


@pytest.fixture
def listener() -> RecordingListener:
    """Provide a listener that records breaker events."""
    return RecordingListener()
