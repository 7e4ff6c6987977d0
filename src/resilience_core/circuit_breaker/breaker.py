"""Core circuit breaker implementation."""

import asyncio
import math
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import ParamSpec, TypeVar

import structlog

from resilience_core.circuit_breaker.clock import Clock, monotonic_clock
from resilience_core.circuit_breaker.exceptions import CircuitOpenError
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilience_core.logging import LoggerLike, log_state_change

T = TypeVar("T")
P = ParamSpec("P")

_Transition = tuple[CircuitState, CircuitState, str]


def _require_count(field_name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    if value < 1:
        raise ValueError(f"{field_name} must be >= 1")


def _require_seconds(field_name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be a number of seconds")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{field_name} must be a finite number >= 0")


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failure weight while ``CLOSED`` that opens the
            breaker.
        recovery_successes: Successes while ``CLOSED`` needed to fully offset
            one failure.
        failure_gap: Seconds without failures after which earlier failures are
            forgiven when the next one arrives.
        recovery_timeout: Seconds to stay ``OPEN`` before ``HALF_OPEN``.
        success_threshold: Successes while ``HALF_OPEN`` that close the
            breaker.
    """

    failure_threshold: int = 5
    recovery_successes: int = 10
    failure_gap: float = 60.0
    recovery_timeout: float = 30.0
    success_threshold: int = 2

    def __post_init__(self) -> None:
        _require_count("failure_threshold", self.failure_threshold)
        _require_count("recovery_successes", self.recovery_successes)
        _require_seconds("failure_gap", self.failure_gap)
        _require_seconds("recovery_timeout", self.recovery_timeout)
        _require_count("success_threshold", self.success_threshold)

    @property
    def recovery_rate(self) -> float:
        """Failure weight removed by one success while ``CLOSED``."""
        return 1.0 / self.recovery_successes


@dataclass(frozen=True, slots=True)
class _Admission:
    """Decision to run one operation, tied to the state it was admitted in."""

    generation: int
    state: CircuitState
    config: CircuitBreakerConfig


class CircuitBreaker:
    """Stateful proxy around a dangerous operation.

    The breaker starts ``CLOSED``. Failures while closed add weight to a
    counter that successes slowly pay back; reaching ``failure_threshold``
    opens the breaker. While ``OPEN`` calls are rejected with
    ``CircuitOpenError``. The first rejected call after ``recovery_timeout``
    moves the breaker to ``HALF_OPEN`` and the call after it is attempted.
    ``success_threshold`` consecutive half-open successes close the breaker;
    any half-open failure opens it again.

    All bookkeeping happens under one lock. The operation itself runs outside
    the lock, so a slow call does not serialize unrelated callers.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: LoggerLike | None = None,
    ) -> None:
        """Build a circuit breaker in the ``CLOSED`` state.

        Args:
            name: Breaker name used in logs, listener events and errors.
            config: Breaker thresholds. Defaults to ``CircuitBreakerConfig()``.
            clock: Monotonic time source in seconds. Defaults to
                ``time.monotonic``.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger for state transitions. Defaults to a
                structlog logger named after this module.
        """
        self.name = name
        self._config = CircuitBreakerConfig() if config is None else config
        self._clock = monotonic_clock if clock is None else clock
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = structlog.get_logger(__name__) if logger is None else logger
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._generation = 0
        self._failure_count = 0.0
        self._half_open_success_count = 0
        self._last_failure_at: float | None = None
        self._open_deadline = self._clock() + self._config.recovery_timeout

    @classmethod
    def configure(
        cls,
        name: str,
        failure_threshold: int,
        recovery_successes: int,
        failure_gap: float,
        recovery_timeout: float,
        success_threshold: int,
        *,
        clock: Clock | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: LoggerLike | None = None,
    ) -> "CircuitBreaker":
        """Build a breaker from the five thresholds.

        Args:
            name: Breaker name.
            failure_threshold: Failures while closed before opening.
            recovery_successes: Successes that offset one closed failure.
            failure_gap: Seconds between failures before history is forgiven.
            recovery_timeout: Seconds to stay open before half-open.
            success_threshold: Half-open successes before closing.
            clock: Optional monotonic time source.
            listeners: Optional listener hooks.
            logger: Optional structured logger.

        Raises:
            ValueError: If any threshold is out of range.
        """
        config = CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            recovery_successes=recovery_successes,
            failure_gap=failure_gap,
            recovery_timeout=recovery_timeout,
            success_threshold=success_threshold,
        )
        return cls(
            name, config=config, clock=clock, listeners=listeners, logger=logger
        )

    @property
    def state(self) -> CircuitState:
        """Current breaker state."""
        with self._lock:
            return self._state

    def get_state(self) -> CircuitState:
        """Return the current breaker state."""
        return self.state

    def set_state(self, state: CircuitState | str) -> None:
        """Force the breaker into ``state``.

        Counters are reset and the open deadline restarts, exactly as for a
        natural transition, even when ``state`` is the current state.
        """
        new_state = CircuitState(state)
        with self._lock:
            transition = self._transition(new_state, "manual_override")
        self._publish(transition)

    def reset(self) -> None:
        """Force the breaker ``CLOSED``."""
        self.set_state(CircuitState.CLOSED)

    def trip(self) -> None:
        """Force the breaker ``OPEN``."""
        self.set_state(CircuitState.OPEN)

    def snapshot(self) -> BreakerSnapshot:
        """Return a consistent view of the breaker internals."""
        with self._lock:
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                half_open_success_count=self._half_open_success_count,
                last_failure_at=self._last_failure_at,
                open_deadline=self._open_deadline,
            )

    @property
    def config(self) -> CircuitBreakerConfig:
        """Current configuration snapshot."""
        with self._lock:
            return self._config

    @config.setter
    def config(self, config: CircuitBreakerConfig) -> None:
        if not isinstance(config, CircuitBreakerConfig):
            raise TypeError("config must be a CircuitBreakerConfig")
        with self._lock:
            self._config = config

    @property
    def failure_threshold(self) -> int:
        return self.config.failure_threshold

    @failure_threshold.setter
    def failure_threshold(self, value: int) -> None:
        self._update_config(failure_threshold=value)

    @property
    def recovery_successes(self) -> int:
        return self.config.recovery_successes

    @recovery_successes.setter
    def recovery_successes(self, value: int) -> None:
        self._update_config(recovery_successes=value)

    @property
    def recovery_rate(self) -> float:
        return self.config.recovery_rate

    @property
    def failure_gap(self) -> float:
        return self.config.failure_gap

    @failure_gap.setter
    def failure_gap(self, value: float) -> None:
        self._update_config(failure_gap=value)

    @property
    def recovery_timeout(self) -> float:
        return self.config.recovery_timeout

    @recovery_timeout.setter
    def recovery_timeout(self, value: float) -> None:
        self._update_config(recovery_timeout=value)

    @property
    def success_threshold(self) -> int:
        return self.config.success_threshold

    @success_threshold.setter
    def success_threshold(self, value: int) -> None:
        self._update_config(success_threshold=value)

    def call(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Invoke a callable under circuit breaker protection.

        Args:
            func: Dangerous callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        admission = self._admit()
        start = self._clock()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            self._record_failure(admission, exc, start)
            raise
        self._record_success(admission, start)
        return result

    async def acall(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Await an async callable under circuit breaker protection.

        Same semantics as ``call``.
        """
        task = asyncio.current_task()
        if task is not None:
            callable_name = getattr(func, "__qualname__", None)
            if callable_name is None:
                callable_name = func.__class__.__qualname__
            task.set_name(f"circuit_breaker:{self.name}:{callable_name}")

        admission = self._admit()
        start = self._clock()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            self._record_failure(admission, exc, start)
            raise
        self._record_success(admission, start)
        return result

    def _admit(self) -> _Admission:
        transition: _Transition | None = None
        with self._lock:
            if self._state != CircuitState.OPEN:
                return _Admission(self._generation, self._state, self._config)

            now = self._clock()
            retry_after = max(self._open_deadline - now, 0.0)
            if now > self._open_deadline:
                # This call is still rejected; the next one runs half-open.
                transition = self._transition(
                    CircuitState.HALF_OPEN, "recovery_timeout_elapsed"
                )

        self._publish(transition)
        self._emit_call_rejected()
        raise CircuitOpenError(self.name, retry_after=retry_after)

    def _record_success(self, admission: _Admission, start: float) -> None:
        transition: _Transition | None = None
        with self._lock:
            now = self._clock()
            if admission.generation == self._generation:
                transition = self._apply_success(admission)

        self._publish(transition)
        self._emit_call_succeeded(max(now - start, 0.0))

    def _record_failure(
        self, admission: _Admission, exc: Exception, start: float
    ) -> None:
        transition: _Transition | None = None
        with self._lock:
            now = self._clock()
            if admission.generation == self._generation:
                transition = self._apply_failure(admission, now)

        self._emit_call_failed(exc, max(now - start, 0.0))
        self._publish(transition)

    def _apply_success(self, admission: _Admission) -> _Transition | None:
        # Caller holds the lock. Outcomes from an earlier generation are dropped
        # before reaching here.
        if admission.state == CircuitState.CLOSED:
            self._failure_count = max(
                self._failure_count - admission.config.recovery_rate, 0.0
            )
            return None

        self._half_open_success_count += 1
        if self._half_open_success_count >= admission.config.success_threshold:
            return self._transition(CircuitState.CLOSED, "success_threshold_reached")
        return None

    def _apply_failure(self, admission: _Admission, now: float) -> _Transition | None:
        # Caller holds the lock.
        if admission.state == CircuitState.HALF_OPEN:
            return self._transition(CircuitState.OPEN, "half_open_failure")

        config = admission.config
        if (
            self._last_failure_at is not None
            and now - self._last_failure_at > config.failure_gap
        ):
            self._failure_count = 0.0
        self._last_failure_at = now
        self._failure_count += 1
        if self._failure_count >= config.failure_threshold:
            return self._transition(CircuitState.OPEN, "failure_threshold_reached")
        return None

    def _transition(self, new_state: CircuitState, reason: str) -> _Transition:
        # Caller holds the lock.
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._failure_count = 0.0
        self._half_open_success_count = 0
        self._open_deadline = self._clock() + self._config.recovery_timeout
        return old_state, new_state, reason

    def _update_config(self, **changes: int | float) -> None:
        with self._lock:
            self._config = replace(self._config, **changes)

    def _publish(self, transition: _Transition | None) -> None:
        if transition is None:
            return
        old, new, reason = transition
        log_state_change(
            self._logger,
            breaker=self.name,
            old_state=old.value,
            new_state=new.value,
            reason=reason,
        )
        self._emit_state_change(old, new)

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                continue

    def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                continue

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                continue
