"""Breaker-guarded write path with an event-buffer fallback."""

from __future__ import annotations

import threading
from collections import deque
from enum import StrEnum
from typing import Generic, Protocol, TypeVar

import structlog

from availability_core.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from availability_core.logging import log_warning

E = TypeVar("E")
E_contra = TypeVar("E_contra", contravariant=True)

_logger = structlog.stdlib.get_logger(__name__)


class WriteSink(Protocol[E_contra]):
    """Authoritative-store write protected by the breaker."""

    async def write(self, event: E_contra) -> None:
        """Persist one event."""


class EventBuffer(Protocol[E_contra]):
    """Durable-enough holding area used while the write path is broken."""

    async def buffer(self, event: E_contra) -> None:
        """Hold one event for later replay."""


class WriteOutcome(StrEnum):
    """How ``GuardedWriter.submit`` disposed of an event."""

    WRITTEN = "written"
    BUFFERED = "buffered"


class BufferFullError(RuntimeError):
    """Raised when a bounded in-memory buffer cannot take another event."""


class InMemoryEventBuffer(Generic[E]):
    """Bounded FIFO buffer for tests and single-process demos."""

    def __init__(self, max_events: int | None = None) -> None:
        if max_events is not None and max_events < 1:
            raise ValueError("max_events must be >= 1 when provided")
        self._max_events = max_events
        self._events: deque[E] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    async def buffer(self, event: E) -> None:
        with self._lock:
            if self._max_events is not None and len(self._events) >= self._max_events:
                raise BufferFullError(f"buffer full: max_events={self._max_events}")
            self._events.append(event)

    def drain(self) -> list[E]:
        """Remove and return every buffered event in arrival order."""
        with self._lock:
            drained = list(self._events)
            self._events.clear()
            return drained


class GuardedWriter(Generic[E]):
    """Write events through a circuit breaker, diverting to a buffer when open.

    A rejected call (``CircuitOpenError``) is buffered without touching the
    sink. A sink failure is buffered only when it left the breaker ``OPEN``;
    otherwise it is re-raised so the caller can decide how to react.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        sink: WriteSink[E],
        fallback: EventBuffer[E],
    ) -> None:
        self._breaker = breaker
        self._sink = sink
        self._fallback = fallback
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {"written": 0, "buffered": 0, "failed": 0}

    @property
    def counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def _bump(self, counter: str) -> None:
        with self._lock:
            self._counts[counter] += 1

    async def _divert(self, event: E, *, reason: str) -> WriteOutcome:
        await self._fallback.buffer(event)
        self._bump("buffered")
        if reason == "circuit_tripped":
            log_warning(
                _logger,
                "write_diverted_to_buffer",
                breaker=self._breaker.name,
                reason=reason,
            )
        return WriteOutcome.BUFFERED

    async def submit(self, event: E) -> WriteOutcome:
        """Write ``event`` or buffer it while the breaker refuses writes."""
        try:
            await self._breaker.call(self._sink.write, event)
        except CircuitOpenError:
            return await self._divert(event, reason="circuit_open")
        except Exception:
            self._bump("failed")
            if self._breaker.current_state() == CircuitState.OPEN:
                return await self._divert(event, reason="circuit_tripped")
            raise
        self._bump("written")
        return WriteOutcome.WRITTEN
