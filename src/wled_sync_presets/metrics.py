"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_REGISTRY = CollectorRegistry()

REQUEST_LATENCY = Histogram(
    "wled_sync_api_request_duration_seconds",
    "Time spent processing API requests",
    ["method", "path", "status"],
    registry=_REGISTRY,
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5],
)
REQUEST_COUNT = Counter(
    "wled_sync_api_requests_total",
    "HTTP requests processed by the API",
    ["method", "path", "status"],
    registry=_REGISTRY,
)
DISCOVERY_PROBES = Counter(
    "wled_sync_discovery_probes_total",
    "Candidate probes by outcome",
    ["result"],
    registry=_REGISTRY,
)
DISCOVERED_DEVICES = Gauge(
    "wled_sync_discovered_devices",
    "Devices confirmed since startup",
    registry=_REGISTRY,
)
SETTINGS_FETCHES = Counter(
    "wled_sync_settings_fetches_total",
    "Settings fetches by outcome",
    ["result"],
    registry=_REGISTRY,
)
PRESET_APPLIES = Counter(
    "wled_sync_preset_applies_total",
    "Preset applications by outcome",
    ["result"],
    registry=_REGISTRY,
)
DEVICE_REQUEST_DURATION = Histogram(
    "wled_sync_device_request_duration_seconds",
    "Time spent waiting on device HTTP calls",
    ["operation", "result"],
    registry=_REGISTRY,
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10],
)


def get_registry() -> CollectorRegistry:
    """Return the registry holding the service metrics."""

    return _REGISTRY


def latest_metrics() -> bytes:
    """Render the latest metrics payload for scraping."""

    return generate_latest(_REGISTRY)


def observe_request(method: str, path: str, status: int, duration_seconds: float) -> None:
    """Record API request metrics."""

    status_str = str(status)
    REQUEST_COUNT.labels(method=method, path=path, status=status_str).inc()
    REQUEST_LATENCY.labels(method=method, path=path, status=status_str).observe(duration_seconds)


def record_discovery_probe(result: str) -> None:
    """Record the outcome of a candidate probe."""

    DISCOVERY_PROBES.labels(result=result).inc()


def set_discovered_devices(count: int) -> None:
    DISCOVERED_DEVICES.set(count)


def record_settings_fetch(result: str) -> None:
    SETTINGS_FETCHES.labels(result=result).inc()


def record_preset_apply(result: str) -> None:
    PRESET_APPLIES.labels(result=result).inc()


def observe_device_request(operation: str, result: str, duration_seconds: float) -> None:
    """Record how long a device HTTP call took."""

    DEVICE_REQUEST_DURATION.labels(operation=operation, result=result).observe(duration_seconds)


METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST
