"""
Prometheus metrics for playersync.

Metrics exposed:
- Sync run counters by type and terminal status
- Per-item outcome counters (updated, added, skipped, review, data_error)
- Upstream provider request counters, plus errors left after retries
- Sync duration histogram and a running gauge
- Circuit breaker state gauge

The orchestrator never touches these globals directly: it talks to an
injected MetricsSink, so tests and embedders can swap in NullMetricsSink.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram

if TYPE_CHECKING:
    from playersync.services.sync.types import SyncResult

# Sync Metrics
sync_runs_total = Counter(
    "playersync_sync_runs_total",
    "Total sync runs by type and terminal status",
    ["sync_type", "status"]
)

sync_items_total = Counter(
    "playersync_sync_items_total",
    "Total items processed by sync type and outcome",
    ["sync_type", "outcome"]
)

sync_duration_seconds = Histogram(
    "playersync_sync_duration_seconds",
    "Sync run duration in seconds",
    ["sync_type"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600)
)

sync_running = Gauge(
    "playersync_sync_running",
    "1 while a sync run holds the single-flight guard"
)

sync_rejected_total = Counter(
    "playersync_sync_rejected_total",
    "Sync requests rejected because another run was active",
    ["sync_type"]
)

# Upstream Provider Metrics
espn_api_requests_success_total = Counter(
    "playersync_espn_api_requests_success_total",
    "Total successful ESPN API requests"
)

espn_api_requests_failure_total = Counter(
    "playersync_espn_api_requests_failure_total",
    "Total failed ESPN API requests",
    ["error_type"]
)

upstream_errors_total = Counter(
    "playersync_upstream_errors_total",
    "Upstream calls that still failed after retries, by error type",
    ["error_type"]
)

# Circuit Breaker Metrics
circuit_breaker_state = Gauge(
    "playersync_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["name"]
)


def record_espn_api_request_success():
    """Record a successful ESPN API request."""
    espn_api_requests_success_total.inc()


def record_espn_api_request_failure(error_type: str = "unknown"):
    """Record a failed ESPN API request."""
    espn_api_requests_failure_total.labels(error_type=error_type).inc()


def record_circuit_breaker_state(name: str, state: str):
    """Record circuit breaker state as a numeric gauge."""
    value = {"closed": 0, "open": 1, "half-open": 2, "half_open": 2}.get(state, 0)
    circuit_breaker_state.labels(name=name).set(value)


class MetricsSink(ABC):
    """Narrow metrics interface injected into the orchestrator."""

    @abstractmethod
    def sync_started(self, sync_type: str) -> None:
        ...

    @abstractmethod
    def sync_rejected(self, sync_type: str) -> None:
        ...

    @abstractmethod
    def sync_finished(self, sync_type: str, result: "SyncResult") -> None:
        ...

    @abstractmethod
    def item_processed(self, sync_type: str, outcome: str) -> None:
        ...

    @abstractmethod
    def api_error(self, error_type: str) -> None:
        ...


class PrometheusMetricsSink(MetricsSink):
    """MetricsSink backed by the module-level Prometheus collectors."""

    def sync_started(self, sync_type: str) -> None:
        sync_running.set(1)

    def sync_rejected(self, sync_type: str) -> None:
        sync_rejected_total.labels(sync_type=sync_type).inc()

    def sync_finished(self, sync_type: str, result: "SyncResult") -> None:
        sync_running.set(0)
        sync_runs_total.labels(sync_type=sync_type, status=result.status.value).inc()
        if result.duration_ms is not None:
            sync_duration_seconds.labels(sync_type=sync_type).observe(result.duration_ms / 1000.0)

    def item_processed(self, sync_type: str, outcome: str) -> None:
        sync_items_total.labels(sync_type=sync_type, outcome=outcome).inc()

    def api_error(self, error_type: str) -> None:
        upstream_errors_total.labels(error_type=error_type).inc()


class NullMetricsSink(MetricsSink):
    """MetricsSink that records nothing."""

    def sync_started(self, sync_type: str) -> None:
        pass

    def sync_rejected(self, sync_type: str) -> None:
        pass

    def sync_finished(self, sync_type: str, result: "SyncResult") -> None:
        pass

    def item_processed(self, sync_type: str, outcome: str) -> None:
        pass

    def api_error(self, error_type: str) -> None:
        pass
