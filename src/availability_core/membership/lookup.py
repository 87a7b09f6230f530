"""Composite lookup: Bloom pre-filter with authoritative-store fallback."""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Protocol

import structlog

from availability_core.logging import log_warning
from availability_core.membership.exceptions import FilterNotLoadedError
from availability_core.membership.index import MembershipIndex

_logger = structlog.stdlib.get_logger(__name__)


def _monotonic() -> float:
    return time.monotonic()


class AuthoritativeStore(Protocol):
    """System of record consulted for every positive filter answer."""

    async def exists(self, key: str) -> bool:
        """Return whether ``key`` truly exists."""


class LookupListener(Protocol):
    """Listener protocol for composite lookup events."""

    async def on_filter_checked(self, may_exist: bool, elapsed: float) -> None:
        """Handle one filter probe."""

    async def on_store_queried(self, exists: bool, elapsed: float) -> None:
        """Handle one authoritative fallback query."""

    async def on_false_positive(self, key: str) -> None:
        """Handle a positive filter answer denied by the store."""


@dataclass(frozen=True)
class LookupResult:
    """Outcome of one composite lookup."""

    key: str
    exists: bool
    may_exist: bool
    authoritative_queried: bool
    false_positive: bool

    @property
    def available(self) -> bool:
        return not self.exists

    def as_response(self) -> dict[str, bool]:
        """Return the response body for the lookup endpoint."""
        return {
            "exists": self.exists,
            "mayExist": self.may_exist,
            "authoritativeQueried": self.authoritative_queried,
            "falsePositive": self.false_positive,
        }


@dataclass(frozen=True)
class LookupStats:
    """Counters accumulated by a ``MembershipLookup``.

    Attributes:
        filter_checks: Lookups that consulted the filter.
        filter_negatives: Lookups answered "absent" by the filter alone.
        store_queries: Lookups that fell back to the authoritative store.
        true_positives: Fallbacks confirmed by the store.
        false_positives: Fallbacks denied by the store.
    """

    filter_checks: int = 0
    filter_negatives: int = 0
    store_queries: int = 0
    true_positives: int = 0
    false_positives: int = 0

    @property
    def observed_false_positive_rate(self) -> float:
        """False positives over all lookups of keys that turned out absent."""
        absent = self.filter_negatives + self.false_positives
        if absent == 0:
            return 0.0
        return self.false_positives / absent


class MembershipLookup:
    """Answer existence queries with a filter first and the store second.

    A negative filter answer is returned without I/O. A positive answer is
    always re-verified against the authoritative store, so a false positive
    costs one extra store query and never an incorrect answer.
    """

    def __init__(
        self,
        store: AuthoritativeStore,
        *,
        index: MembershipIndex | None = None,
        listeners: Sequence[LookupListener] | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._stats_lock = threading.Lock()
        self._stats = LookupStats()

    @property
    def loaded(self) -> bool:
        return self._index is not None

    @property
    def index(self) -> MembershipIndex:
        """Return the attached index.

        Raises:
            FilterNotLoadedError: If no index has been attached yet.
        """
        index = self._index
        if index is None:
            raise FilterNotLoadedError()
        return index

    def attach(self, index: MembershipIndex) -> None:
        """Install a loaded index, replacing any previous one atomically."""
        self._index = index

    @property
    def stats(self) -> LookupStats:
        with self._stats_lock:
            return self._stats

    def _count(self, **increments: int) -> None:
        with self._stats_lock:
            current = self._stats
            self._stats = replace(
                current,
                **{name: getattr(current, name) + delta for name, delta in increments.items()},
            )

    async def _emit(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(*args)
            except Exception:
                log_warning(
                    _logger,
                    "lookup_listener_failed",
                    hook=hook,
                    listener=type(listener).__name__,
                    exc_info=True,
                )

    async def lookup(self, key: str) -> LookupResult:
        """Resolve whether ``key`` exists.

        Raises:
            FilterNotLoadedError: If no index has been attached.
            TypeError: If ``key`` is not a ``str``.
            Exception: Any failure of the authoritative store, unchanged.
        """
        index = self.index
        start = _monotonic()
        may_exist = index.may_contain(key)
        await self._emit("on_filter_checked", may_exist, max(_monotonic() - start, 0.0))

        self._count(filter_checks=1, filter_negatives=0 if may_exist else 1)
        if not may_exist:
            return LookupResult(
                key=key,
                exists=False,
                may_exist=False,
                authoritative_queried=False,
                false_positive=False,
            )

        query_start = _monotonic()
        exists = bool(await self._store.exists(key))
        await self._emit(
            "on_store_queried", exists, max(_monotonic() - query_start, 0.0)
        )

        if exists:
            self._count(store_queries=1, true_positives=1)
        else:
            self._count(store_queries=1, false_positives=1)
            await self._emit("on_false_positive", key)

        return LookupResult(
            key=key,
            exists=exists,
            may_exist=True,
            authoritative_queried=True,
            false_positive=not exists,
        )
