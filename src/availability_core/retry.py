from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_random_exponential,
)
from tenacity.retry import retry_base

from availability_core.errors import TransientError


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and backoff boundaries."""

    attempts: int | None
    min_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("attempts must be >= 1 when provided")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")


def retry_if_transient() -> retry_base:
    """Retry predicate matching ``TransientError`` and its subclasses only."""
    return retry_if_exception_type(TransientError)


def build_exponential_jitter_retrying(
    *,
    policy: RetryBackoffPolicy,
    retry: retry_base | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with full-jitter exponential backoff.

    Each delay is drawn uniformly from zero up to ``min_seconds * 2**n``,
    capped at ``max_seconds``.

    ``retry`` defaults to retrying transient dependency failures only.
    """
    options: dict[str, Any] = {
        "retry": retry_if_transient() if retry is None else retry,
        "wait": wait_random_exponential(
            multiplier=policy.min_seconds,
            max=policy.max_seconds,
        ),
        "stop": (
            stop_never
            if policy.attempts is None
            else stop_after_attempt(policy.attempts)
        ),
        "reraise": reraise,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
