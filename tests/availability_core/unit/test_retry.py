from __future__ import annotations

import pytest
from tenacity import AsyncRetrying, RetryCallState, RetryError
from tenacity.retry import retry_if_exception_type

from availability_core.errors import DownstreamOperationError, TransientError
from availability_core.retry import (
    RetryBackoffPolicy,
    build_exponential_jitter_retrying,
)

pytestmark = pytest.mark.asyncio


async def _no_sleep(delay: float) -> None:
    return None


@pytest.mark.parametrize(
    ("attempts", "min_seconds", "max_seconds", "message"),
    [
        (0, 0.0, 1.0, "attempts must be >= 1"),
        (1, -0.1, 1.0, "min_seconds must be >= 0"),
        (1, 0.1, -0.1, "max_seconds must be >= 0"),
        (1, 2.0, 1.0, "max_seconds must be >= min_seconds"),
    ],
)
async def test_retry_backoff_policy_validation(
    attempts: int,
    min_seconds: float,
    max_seconds: float,
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        RetryBackoffPolicy(
            attempts=attempts,
            min_seconds=min_seconds,
            max_seconds=max_seconds,
        )


async def test_build_retrying_without_optional_hooks() -> None:
    retrying = build_exponential_jitter_retrying(
        policy=RetryBackoffPolicy(attempts=2, min_seconds=0.0, max_seconds=0.0),
    )

    assert isinstance(retrying, AsyncRetrying)


async def test_default_predicate_retries_transient_errors_only() -> None:
    retrying = build_exponential_jitter_retrying(
        policy=RetryBackoffPolicy(attempts=5, min_seconds=0.0, max_seconds=0.0),
        sleep=_no_sleep,
    )

    attempts = 0
    with pytest.raises(DownstreamOperationError):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                if attempts < 3:
                    raise TransientError("replica lagging")
                raise DownstreamOperationError("permission denied")

    assert attempts == 3


async def test_build_retrying_with_before_sleep_only() -> None:
    before_sleep_calls: list[int] = []

    def _before_sleep(state: RetryCallState) -> None:
        before_sleep_calls.append(state.attempt_number)

    retrying = build_exponential_jitter_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryBackoffPolicy(attempts=3, min_seconds=0.0, max_seconds=0.0),
        before_sleep=_before_sleep,
    )

    attempts = 0
    with pytest.raises(ValueError):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise ValueError("boom")

    assert attempts == 3
    assert before_sleep_calls == [1, 2]


async def test_build_retrying_with_unbounded_attempts() -> None:
    sleep_calls: list[float] = []

    async def _sleep(delay: float) -> None:
        sleep_calls.append(delay)

    retrying = build_exponential_jitter_retrying(
        policy=RetryBackoffPolicy(attempts=None, min_seconds=0.0, max_seconds=0.0),
        sleep=_sleep,
    )

    attempts = 0
    async for attempt in retrying:
        with attempt:
            attempts += 1
            if attempts < 4:
                raise TransientError("retry")

    assert attempts == 4
    assert len(sleep_calls) == 3


async def test_build_retrying_with_reraise_disabled() -> None:
    retrying = build_exponential_jitter_retrying(
        policy=RetryBackoffPolicy(attempts=2, min_seconds=0.0, max_seconds=0.0),
        sleep=_no_sleep,
        reraise=False,
    )

    with pytest.raises(RetryError):
        async for attempt in retrying:
            with attempt:
                raise TransientError("boom")


async def test_backoff_delays_stay_within_max_seconds() -> None:
    sleep_calls: list[float] = []

    async def _sleep(delay: float) -> None:
        sleep_calls.append(delay)

    retrying = build_exponential_jitter_retrying(
        policy=RetryBackoffPolicy(attempts=8, min_seconds=0.5, max_seconds=2.0),
        sleep=_sleep,
    )

    with pytest.raises(TransientError):
        async for attempt in retrying:
            with attempt:
                raise TransientError("replica lagging")

    assert len(sleep_calls) == 7
    assert all(0.0 <= delay <= 2.0 for delay in sleep_calls)
