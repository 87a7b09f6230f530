"""Structured-logging listener for circuit breaker events."""

from __future__ import annotations

import structlog

from availability_core.circuit_breaker.state import CircuitState
from availability_core.logging import (
    StructuredLogger,
    log_info,
    log_warning,
)

_TRANSITION_EVENTS: dict[CircuitState, str] = {
    CircuitState.OPEN: "circuit_opened",
    CircuitState.HALF_OPEN: "circuit_half_open",
    CircuitState.CLOSED: "circuit_closed",
}


class LoggingBreakerListener:
    """Log breaker transitions and rejections.

    Successful and failed calls are not logged individually; they are the hot
    path and belong in metrics.
    """

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._logger = (
            structlog.stdlib.get_logger(__name__) if logger is None else logger
        )

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        fields: dict[str, object] = {
            "breaker": name,
            "from_state": str(old),
            "to_state": str(new),
        }
        if new == CircuitState.OPEN:
            log_warning(self._logger, _TRANSITION_EVENTS[new], **fields)
            return
        log_info(self._logger, _TRANSITION_EVENTS[new], **fields)

    async def on_call_rejected(self, name: str, retry_after: float) -> None:
        log_info(
            self._logger,
            "circuit_call_rejected",
            breaker=name,
            retry_after=round(retry_after, 3),
        )

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        return None

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        return None
