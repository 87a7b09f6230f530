from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

import structlog

from availability_core.circuit_breaker import CircuitBreaker, CircuitState
from availability_core.logging import log_warning
from availability_core.membership import MembershipLookup

REASON_READY = "ready"
REASON_CHECK_FAILED = "check_failed"
REASON_CIRCUIT_NOT_CLOSED = "circuit_not_closed"
REASON_FILTER_NOT_LOADED = "filter_not_loaded"
_logger = structlog.stdlib.get_logger(__name__)

ReadinessCheck = Callable[[], Awaitable["CheckResult"]]


@dataclass(frozen=True)
class CheckResult:
    """Result of one dependency readiness check."""

    name: str
    ok: bool
    reason: str | None = None
    detail: str = ""
    data: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze check metadata mapping to keep snapshots read-only."""
        frozen_data = MappingProxyType(dict(self.data))
        object.__setattr__(self, "data", frozen_data)


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Immutable snapshot of readiness and per-check outcomes."""

    status: str
    ready: bool
    reason: str
    detail: str
    last_checked_at: float
    check_results: tuple[CheckResult, ...]

    def as_response(self) -> dict[str, object]:
        """Return a JSON-friendly health payload."""
        return {
            "status": self.status,
            "ready": self.ready,
            "reason": self.reason,
            "detail": self.detail,
            "checks": {
                result.name: {"ok": result.ok, "reason": result.reason, **result.data}
                for result in self.check_results
            },
        }


def make_breaker_check(breaker: CircuitBreaker, *, name: str | None = None) -> ReadinessCheck:
    """Report healthy only while ``breaker`` is ``CLOSED``."""
    check_name = breaker.name if name is None else name

    async def _check() -> CheckResult:
        snapshot = breaker.snapshot()
        data = {
            "state": str(snapshot.state),
            "state_code": snapshot.state.code,
            "retry_after": snapshot.retry_after,
        }
        if snapshot.state == CircuitState.CLOSED:
            return CheckResult(name=check_name, ok=True, data=data)
        return CheckResult(
            name=check_name,
            ok=False,
            reason=REASON_CIRCUIT_NOT_CLOSED,
            detail=f"circuit {snapshot.state}",
            data=data,
        )

    _check.__name__ = check_name
    return _check


def make_membership_check(
    lookup: MembershipLookup,
    *,
    name: str = "membership_filter",
) -> ReadinessCheck:
    """Report healthy once an index is attached, with its provenance."""

    async def _check() -> CheckResult:
        if not lookup.loaded:
            return CheckResult(
                name=name,
                ok=False,
                reason=REASON_FILTER_NOT_LOADED,
                detail="Build and load a membership filter before serving.",
                data={"loaded": False},
            )
        index = lookup.index
        return CheckResult(
            name=name,
            ok=True,
            data={
                "loaded": True,
                "n": index.metadata.n,
                "p": index.metadata.p,
                "created_at": index.metadata.created_at.isoformat(),
                "m": index.bit_count,
                "k": index.hash_count,
            },
        )

    _check.__name__ = name
    return _check


async def evaluate_readiness_once(
    *,
    checks: Sequence[ReadinessCheck],
    now_fn: Callable[[], float] = time.time,
) -> ReadinessSnapshot:
    """Evaluate all readiness checks once and return a new snapshot.

    A check that raises is reported as failed instead of aborting the
    evaluation.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            result = await check()
            results.append(result)
        except Exception as exc:
            check_name = getattr(check, "__name__", "unnamed_check")
            log_warning(
                _logger,
                "readiness_check_failed",
                check=check_name,
                exc_info=True,
            )
            results.append(
                CheckResult(
                    name=check_name,
                    ok=False,
                    reason=REASON_CHECK_FAILED,
                    detail=f"{exc.__class__.__name__}: {exc}",
                )
            )

    ready = all(result.ok for result in results)
    reason = REASON_READY
    detail = ""
    if not ready:
        first_failure = next(result for result in results if not result.ok)
        reason = first_failure.reason or REASON_CHECK_FAILED
        detail = first_failure.detail

    return ReadinessSnapshot(
        status="healthy" if ready else "degraded",
        ready=ready,
        reason=reason,
        detail=detail,
        last_checked_at=now_fn(),
        check_results=tuple(results),
    )
