"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from src.models import ConnectionStatus

_STATUS_VALUES = {
    ConnectionStatus.IDLE: 0,
    ConnectionStatus.CONNECTING: 1,
    ConnectionStatus.CONNECTED: 2,
    ConnectionStatus.ERROR: 3,
}


class Metrics:
    """Expose core metrics for monitoring."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        reg = self.registry

        self.rest_request_latency_ms = Histogram(
            "rest_request_latency_ms", "REST latency (ms)", ["service"], registry=reg
        )
        self.rest_error_total = Counter(
            "rest_error_total", "REST errors", ["service"], registry=reg
        )

        # Feed polling
        self.fetch_success_total = Counter(
            "fetch_success_total", "Successful feed fetches", ["feed"], registry=reg
        )
        self.fetch_failure_total = Counter(
            "fetch_failure_total", "Failed feed fetches", ["feed"], registry=reg
        )
        self.fetch_skipped_total = Counter(
            "fetch_skipped_total",
            "Ticks skipped because a fetch was still in flight",
            ["feed"],
            registry=reg,
        )
        self.fetch_stale_discarded_total = Counter(
            "fetch_stale_discarded_total",
            "Responses discarded because a newer request already applied",
            ["feed"],
            registry=reg,
        )
        self.fetch_latency_ms = Histogram(
            "fetch_latency_ms", "Feed fetch latency (ms)", ["feed"], registry=reg
        )
        self.connection_status = Gauge(
            "connection_status",
            "Derived connection status (0 idle, 1 connecting, 2 connected, 3 error)",
            ["feed"],
            registry=reg,
        )

        # Trading
        self.trade_attempts_total = Counter(
            "trade_attempts_total", "Trade attempts by outcome", ["status"], registry=reg
        )
        self.trade_log_write_failures_total = Counter(
            "trade_log_write_failures_total", "Trade log writes that failed", registry=reg
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)

    def set_connection_status(self, feed: str, status: ConnectionStatus) -> None:
        self.connection_status.labels(feed=feed).set(_STATUS_VALUES[status])
