"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    @property
    def code(self) -> int:
        """Numeric encoding exported as a gauge (0=closed, 1=half-open, 2=open)."""
        return _STATE_CODES[self]


_STATE_CODES: dict[CircuitState, int] = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        consecutive_failures: Failures since the last success or close.
        consecutive_successes: Successes accumulated while ``HALF_OPEN``.
        opened_at: Monotonic timestamp when the breaker last entered ``OPEN``.
        retry_after: Seconds left in the cooldown window, ``0.0`` if none.
    """

    name: str
    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    opened_at: float | None
    retry_after: float
