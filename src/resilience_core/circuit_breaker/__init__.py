"""Synchronous and async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Failures while ``CLOSED`` accumulate weight that successes pay back
    gradually, and a long enough quiet period forgives earlier failures.
  - The call that finds the open timeout elapsed is still rejected. It moves
    the breaker to ``HALF_OPEN`` so that the *next* call is attempted.
  - Any failure while ``HALF_OPEN`` reopens the breaker immediately.
  - State lives in the ``CircuitBreaker`` instance only; nothing is shared
    across processes or persisted.
"""

from resilience_core.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from resilience_core.circuit_breaker.clock import Clock, ManualClock, monotonic_clock
from resilience_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "Clock",
    "ManualClock",
    "monotonic_clock",
]
