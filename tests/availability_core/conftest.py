from __future__ import annotations

import pytest

from tests.availability_core.support.runtime_fakes import (
    FakeClock,
    FakeLogger,
    InMemoryKeyStore,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive the breaker's monotonic clock manually."""
    clock = FakeClock()
    monkeypatch.setattr("availability_core.circuit_breaker.breaker._monotonic", clock)
    return clock


@pytest.fixture
def user_store() -> InMemoryKeyStore:
    """Authoritative store seeded with a few usernames."""
    return InMemoryKeyStore(["alice", "bob", "carol"])
