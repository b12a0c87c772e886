"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "quiz_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "quiz_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    ["endpoint"],
)
SETTLEMENT_STEPS = Counter(
    "quiz_settlement_steps_total",
    "Settlement pipeline step outcomes",
    ["step", "outcome"],
)
RECONCILIATION_SESSIONS = Counter(
    "quiz_reconciliation_sessions_total",
    "Sessions visited by the reconciliation job, by outcome",
    ["outcome"],
)


def record_request(method: str, endpoint: str, status: int, latency: float) -> None:
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)


def record_settlement_step(step: str, outcome: str) -> None:
    SETTLEMENT_STEPS.labels(step=step, outcome=outcome).inc()


def record_reconciliation(outcome: str, count: int = 1) -> None:
    if count:
        RECONCILIATION_SESSIONS.labels(outcome=outcome).inc(count)


def latest_metrics() -> tuple[bytes, str]:
    data = generate_latest()
    return data, CONTENT_TYPE_LATEST
