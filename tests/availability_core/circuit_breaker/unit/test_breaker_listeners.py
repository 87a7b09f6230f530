import pytest

from availability_core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    LoggingBreakerListener,
)
from tests.availability_core.support.runtime_fakes import FakeClock, FakeLogger

pytestmark = pytest.mark.asyncio


async def test_logging_listener_reports_transitions_and_rejections(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    breaker = CircuitBreaker(
        "db-write",
        config=CircuitBreakerConfig(
            failure_threshold=1, cooldown=5.0, successes_to_close=1
        ),
        listeners=[LoggingBreakerListener(fake_logger)],
    )

    async def _fail() -> None:
        raise ConnectionError("refused")

    async def _ok() -> str:
        return "ok"

    with pytest.raises(ConnectionError):
        await breaker.execute(_fail)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(_ok)
    fake_clock.advance(5.0)
    await breaker.execute(_ok)

    assert fake_logger.events == [
        "circuit_opened",
        "circuit_call_rejected",
        "circuit_half_open",
        "circuit_closed",
    ]
    level, event, fields = fake_logger.calls[0]
    assert level == "warning"
    assert fields == {
        "breaker": "db-write",
        "from_state": "closed",
        "to_state": "open",
    }
    assert fake_logger.calls[1][2]["retry_after"] == 5.0


async def test_logging_listener_ignores_call_outcomes(fake_logger: FakeLogger) -> None:
    listener = LoggingBreakerListener(fake_logger)

    await listener.on_call_succeeded("svc", 0.1)
    await listener.on_call_failed("svc", RuntimeError("x"), 0.1)
    await listener.on_state_change("svc", CircuitState.OPEN, CircuitState.HALF_OPEN)

    assert fake_logger.calls == [
        (
            "info",
            "circuit_half_open",
            {"breaker": "svc", "from_state": "open", "to_state": "half_open"},
        )
    ]
