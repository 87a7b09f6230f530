"""Offline filter build from a paginated scan of the authoritative store."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Protocol

import structlog
from tenacity import RetryCallState

from availability_core.logging import log_info, log_warning
from availability_core.membership.index import IndexBuilder, MembershipIndex
from availability_core.retry import (
    RetryBackoffPolicy,
    build_exponential_jitter_retrying,
)

DEFAULT_PAGE_SIZE = 10_000
DEFAULT_SCAN_RETRY_POLICY = RetryBackoffPolicy(
    attempts=5,
    min_seconds=0.5,
    max_seconds=10.0,
)

_logger = structlog.stdlib.get_logger(__name__)


class KeySource(Protocol):
    """Keyset-paginated view over every key in the authoritative store."""

    async def count_keys(self) -> int:
        """Return the current key count, used to size the filter."""

    async def fetch_page(self, after: str | None, limit: int) -> Sequence[str]:
        """Return up to ``limit`` keys ordered after ``after`` (exclusive)."""


def _log_retry(state: RetryCallState) -> None:
    outcome = state.outcome
    error = outcome.exception() if outcome is not None else None
    log_warning(
        _logger,
        "membership_build_page_retry",
        attempt=state.attempt_number,
        error_type=type(error).__name__ if error is not None else None,
        error=str(error) if error is not None else None,
    )


async def _fetch_page(
    source: KeySource,
    *,
    after: str | None,
    page_size: int,
    retry_policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None,
) -> Sequence[str]:
    retrying = build_exponential_jitter_retrying(
        policy=retry_policy,
        sleep=sleep,
        before_sleep=_log_retry,
    )
    page: Sequence[str] = ()
    async for attempt in retrying:
        with attempt:
            page = await source.fetch_page(after, page_size)
    return page


async def build_index_from_source(
    source: KeySource,
    *,
    false_positive_rate: float,
    page_size: int = DEFAULT_PAGE_SIZE,
    retry_policy: RetryBackoffPolicy = DEFAULT_SCAN_RETRY_POLICY,
    created_at: datetime | None = None,
    progress_every: int = 10,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> MembershipIndex:
    """Scan ``source`` once and build a read-only membership index.

    The filter is sized from ``count_keys()`` before the scan starts; ``n`` in
    the resulting metadata is the number of keys actually inserted. Page
    fetches failing with ``TransientError`` are retried with exponential
    jitter backoff; any other error aborts the build.

    Args:
        source: Paginated key source.
        false_positive_rate: Target probability in ``(0, 1)``.
        page_size: Keys requested per page.
        retry_policy: Backoff policy for transient page failures.
        created_at: Optional fixed build timestamp.
        progress_every: Log a progress event every this many pages.
        sleep: Optional async sleep override for retries.

    Returns:
        The built index.
    """
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    if progress_every < 1:
        raise ValueError("progress_every must be >= 1")

    expected_items = await source.count_keys()
    builder = IndexBuilder(expected_items, false_positive_rate)
    log_info(
        _logger,
        "membership_build_started",
        expected_items=expected_items,
        false_positive_rate=false_positive_rate,
        bit_count=builder.bit_count,
        hash_count=builder.hash_count,
    )

    after: str | None = None
    pages = 0
    while True:
        page = await _fetch_page(
            source,
            after=after,
            page_size=page_size,
            retry_policy=retry_policy,
            sleep=sleep,
        )
        if not page:
            break
        builder.add_all(page)
        pages += 1
        after = page[-1]
        if pages % progress_every == 0:
            log_info(
                _logger,
                "membership_build_progress",
                pages=pages,
                inserted=builder.inserted,
                expected_items=expected_items,
            )
        if len(page) < page_size:
            break

    if builder.inserted > expected_items:
        log_warning(
            _logger,
            "membership_build_exceeded_estimate",
            inserted=builder.inserted,
            expected_items=expected_items,
        )

    index = builder.finish(created_at=created_at)
    log_info(
        _logger,
        "membership_build_finished",
        pages=pages,
        inserted=index.metadata.n,
        bit_count=index.bit_count,
        hash_count=index.hash_count,
        estimated_false_positive_rate=index.estimated_false_positive_rate(),
    )
    return index
