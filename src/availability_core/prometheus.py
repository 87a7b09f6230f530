"""Prometheus exporters for breaker and lookup events."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from availability_core.circuit_breaker.state import CircuitState


class PrometheusBreakerListener:
    """Export breaker state and call outcomes, labelled by breaker name."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.state = Gauge(
            "circuit_breaker_state",
            "Circuit breaker state (0=CLOSED, 1=HALF_OPEN, 2=OPEN)",
            ["breaker"],
            registry=registry,
        )
        self.calls = Counter(
            "circuit_breaker_calls_total",
            "Protected calls by outcome",
            ["breaker", "outcome"],
            registry=registry,
        )
        self.duration = Histogram(
            "circuit_breaker_call_duration_seconds",
            "Duration of protected calls that were attempted",
            ["breaker"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 5],
            registry=registry,
        )

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        self.state.labels(breaker=name).set(new.code)

    async def on_call_rejected(self, name: str, retry_after: float) -> None:
        self.calls.labels(breaker=name, outcome="rejected").inc()

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        self.calls.labels(breaker=name, outcome="success").inc()
        self.duration.labels(breaker=name).observe(elapsed)

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        self.calls.labels(breaker=name, outcome="failure").inc()
        self.duration.labels(breaker=name).observe(elapsed)


class PrometheusLookupListener:
    """Export filter checks, store fallbacks and false positives."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.checks = Counter(
            "bloom_checks_total",
            "Total Bloom filter checks",
            ["result"],
            registry=registry,
        )
        self.fallbacks = Counter(
            "bloom_db_fallbacks_total",
            "Total authoritative store fallback queries",
            ["actual_result"],
            registry=registry,
        )
        self.false_positives = Counter(
            "bloom_false_positives_total",
            "Total false positives detected",
            registry=registry,
        )
        self.check_duration = Histogram(
            "bloom_check_duration_seconds",
            "Bloom filter check duration in seconds",
            buckets=[0.00001, 0.00005, 0.0001, 0.0005, 0.001],
            registry=registry,
        )

    async def on_filter_checked(self, may_exist: bool, elapsed: float) -> None:
        result = "maybe_exists" if may_exist else "definitely_not_exists"
        self.checks.labels(result=result).inc()
        self.check_duration.observe(elapsed)

    async def on_store_queried(self, exists: bool, elapsed: float) -> None:
        self.fallbacks.labels(actual_result="exists" if exists else "not_exists").inc()

    async def on_false_positive(self, key: str) -> None:
        self.false_positives.inc()
