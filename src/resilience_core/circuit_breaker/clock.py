"""Monotonic time sources for circuit breakers."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Zero-argument callable returning monotonic elapsed seconds."""

    def __call__(self) -> float:
        """Return the current monotonic reading in seconds."""


def monotonic_clock() -> float:
    """Return ``time.monotonic()``; the default breaker clock."""
    return time.monotonic()


class ManualClock:
    """Clock advanced explicitly by the caller.

    Useful for deterministic tests and offline simulations where real delays
    are not wanted.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward by ``seconds``."""
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        self._now += seconds

    def set(self, value: float) -> None:
        """Jump the clock to ``value``. Monotonic clocks never go backwards."""
        if value < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = value
