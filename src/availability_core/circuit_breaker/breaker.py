"""Core circuit breaker implementation."""

import math
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

import structlog

from availability_core.circuit_breaker.exceptions import CircuitOpenError
from availability_core.circuit_breaker.metrics import BreakerListener
from availability_core.circuit_breaker.state import BreakerSnapshot, CircuitState
from availability_core.logging import log_warning

T = TypeVar("T")
P = ParamSpec("P")

_Transition = tuple[CircuitState, CircuitState]

_logger = structlog.stdlib.get_logger(__name__)


def _monotonic() -> float:
    return time.monotonic()


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        cooldown: Seconds to stay ``OPEN`` before the next call may probe.
        successes_to_close: Consecutive ``HALF_OPEN`` successes needed to close.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    cooldown: float = 60.0
    successes_to_close: int = 3
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if not math.isfinite(self.cooldown):
            raise ValueError("cooldown must be finite")
        if self.cooldown < 0:
            raise ValueError("cooldown must be >= 0")
        if self.successes_to_close < 1:
            raise ValueError("successes_to_close must be >= 1")


class CircuitBreaker:
    """Stateful admission gate around a dangerous async operation.

    Bookkeeping (state, counters, ``opened_at``) is mutated only under a
    per-instance lock that is never held across an ``await``. The protected
    operation runs outside the lock, so concurrent callers are not serialized.
    The breaker imposes no timeout: an operation that never completes holds
    only its own caller and never changes shared state.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker for one protected resource.

        Args:
            name: Breaker name used in errors, logs and metrics.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._opened_at: float | None = None

    def current_state(self) -> CircuitState:
        """Return the current breaker state."""
        with self._lock:
            return self._state

    def current_state_code(self) -> int:
        """Return the numeric state encoding used for metrics export."""
        return self.current_state().code

    def snapshot(self) -> BreakerSnapshot:
        """Return a consistent point-in-time view of breaker internals."""
        now = _monotonic()
        with self._lock:
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                consecutive_successes=self._consecutive_successes,
                opened_at=self._opened_at,
                retry_after=self._remaining_cooldown(now),
            )

    def _remaining_cooldown(self, now: float) -> float:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(self._opened_at + self.config.cooldown - now, 0.0)

    def _trip(self, now: float) -> _Transition:
        old = self._state
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._consecutive_successes = 0
        return old, CircuitState.OPEN

    def _admit(self, now: float) -> tuple[float | None, list[_Transition]]:
        """Decide admission; return ``(retry_after, transitions)``."""
        if self._state != CircuitState.OPEN:
            return None, []
        retry_after = self._remaining_cooldown(now)
        if retry_after > 0:
            return retry_after, []
        self._state = CircuitState.HALF_OPEN
        self._consecutive_successes = 0
        return None, [(CircuitState.OPEN, CircuitState.HALF_OPEN)]

    def _record_success(self) -> list[_Transition]:
        self._consecutive_failures = 0
        if self._state != CircuitState.HALF_OPEN:
            return []
        self._consecutive_successes += 1
        if self._consecutive_successes < self.config.successes_to_close:
            return []
        self._state = CircuitState.CLOSED
        self._consecutive_successes = 0
        self._opened_at = None
        return [(CircuitState.HALF_OPEN, CircuitState.CLOSED)]

    def _record_failure(self, now: float) -> list[_Transition]:
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN:
            return [self._trip(now)]
        if (
            self._state == CircuitState.CLOSED
            and self._consecutive_failures >= self.config.failure_threshold
        ):
            return [self._trip(now)]
        # Late outcome of a call admitted before the circuit opened.
        return []

    async def _emit(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(self.name, *args)
            except Exception:
                log_warning(
                    _logger,
                    "breaker_listener_failed",
                    breaker=self.name,
                    hook=hook,
                    listener=type(listener).__name__,
                    exc_info=True,
                )

    async def _emit_transitions(self, transitions: Sequence[_Transition]) -> None:
        for old, new in transitions:
            await self._emit("on_state_change", old, new)

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``func`` when it is attempted
                and fails, re-raised unchanged after bookkeeping.
        """
        with self._lock:
            retry_after, transitions = self._admit(_monotonic())

        if retry_after is not None:
            await self._emit("on_call_rejected", retry_after)
            raise CircuitOpenError(self.name, retry_after=retry_after)
        await self._emit_transitions(transitions)

        start = _monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            finished = _monotonic()
            with self._lock:
                transitions = self._record_failure(finished)
            await self._emit("on_call_failed", exc, max(finished - start, 0.0))
            await self._emit_transitions(transitions)
            raise

        elapsed = max(_monotonic() - start, 0.0)
        with self._lock:
            transitions = self._record_success()
        await self._emit("on_call_succeeded", elapsed)
        await self._emit_transitions(transitions)
        return result

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a zero-argument async operation under breaker protection."""
        return await self.call(operation)
