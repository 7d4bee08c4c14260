"""Prometheus metrics for the gateway."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

BRIDGE_REQUEST_COUNTER = Counter(
    "gateway_bridge_requests_total",
    "Request-reply round trips through the broker",
    ["outcome"],
    registry=registry,
)
BRIDGE_LATENCY_HISTOGRAM = Histogram(
    "gateway_bridge_latency_seconds",
    "Time from publish to reply or failure",
    ["outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
    registry=registry,
)
VALIDATION_ERROR_COUNTER = Counter(
    "gateway_validation_errors_total",
    "Prediction requests rejected before reaching the broker",
    registry=registry,
)
BROKER_CONNECTED_GAUGE = Gauge(
    "gateway_broker_connected",
    "1 while the broker connection is open",
    registry=registry,
)
CONNECT_ATTEMPT_COUNTER = Counter(
    "gateway_broker_connect_attempts_total",
    "Broker connection attempts",
    ["result"],
    registry=registry,
)


def observe_bridge(outcome: str, latency: float) -> None:
    BRIDGE_REQUEST_COUNTER.labels(outcome=outcome).inc()
    BRIDGE_LATENCY_HISTOGRAM.labels(outcome=outcome).observe(latency)


def set_broker_connected(connected: bool) -> None:
    BROKER_CONNECTED_GAUGE.set(1 if connected else 0)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
