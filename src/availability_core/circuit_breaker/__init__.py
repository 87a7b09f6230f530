"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State lives in the ``CircuitBreaker`` instance. Create one breaker per
    protected resource; nothing is persisted across restarts.
  - ``HALF_OPEN`` is entered lazily: the first call that arrives after the
    cooldown becomes a probe. There is no background health-check loop.
  - ``successes_to_close`` consecutive probe successes close the circuit. Any
    single probe failure reopens it and restarts the cooldown.
  - The breaker never swallows the protected operation's exception. Rejections
    are reported with the distinct ``CircuitOpenError``.
"""

from availability_core.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from availability_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from availability_core.circuit_breaker.listeners import LoggingBreakerListener
from availability_core.circuit_breaker.metrics import BreakerListener
from availability_core.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
]
