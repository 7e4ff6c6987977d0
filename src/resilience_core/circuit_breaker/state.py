"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        failure_count: Accumulated failure weight while ``CLOSED``.
        half_open_success_count: Successful probes while ``HALF_OPEN``.
        last_failure_at: Clock reading of the last counted failure, if any.
        open_deadline: Clock reading after which an ``OPEN`` breaker moves to
            ``HALF_OPEN``. Recomputed on every transition.
    """

    name: str
    state: CircuitState
    failure_count: float
    half_open_success_count: int
    last_failure_at: float | None
    open_deadline: float
