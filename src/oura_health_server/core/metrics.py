"""Prometheus metrics.

Each service builds its own MetricsCollector with a private registry and
passes it to the components that record into it. Nothing registers on the
prometheus_client default registry, so several apps can live in one process
(tests, the combined dev server) without duplicate-metric errors.
"""

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class MetricsCollector:
    """Holds every metric a service exposes on /metrics.

    Attributes:
        service: Service name, used in log context only
        registry: Registry the metrics are registered on
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, service: str, registry: CollectorRegistry | None = None) -> None:
        """Create and register all metrics.

        Args:
            service: Service name (api, processor, collector)
            registry: Registry to use (a fresh one if omitted)
        """
        self.service = service
        self.registry = registry or CollectorRegistry()

        # HTTP
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "endpoint", "status"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )
        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "Number of HTTP requests currently being served",
            registry=self.registry,
        )

        # Database
        self.db_errors_total = Counter(
            "db_errors_total",
            "Total number of database errors",
            registry=self.registry,
        )

        # Ingestion
        self.processed_records_total = Counter(
            "processed_records_total",
            "Total number of metric records stored",
            ["metric_type"],
            registry=self.registry,
        )
        self.processing_errors_total = Counter(
            "processing_errors_total",
            "Total number of ingestion failures",
            ["error_type"],
            registry=self.registry,
        )
        self.last_processed_timestamp_seconds = Gauge(
            "last_processed_timestamp_seconds",
            "Unix time of the last stored record",
            registry=self.registry,
        )

        # Collector
        self.collector_runs_total = Counter(
            "collector_runs_total",
            "Total number of collector runs",
            registry=self.registry,
        )
        self.collector_run_duration_seconds = Histogram(
            "collector_run_duration_seconds",
            "Duration of collector runs in seconds",
            registry=self.registry,
        )
        self.data_points_collected_total = Counter(
            "data_points_collected_total",
            "Total number of records forwarded to the processor",
            ["data_type"],
            registry=self.registry,
        )
        self.collector_errors_total = Counter(
            "collector_errors_total",
            "Total number of collector errors",
            ["data_type", "error_type"],
            registry=self.registry,
        )
        self.collector_last_successful_run_timestamp_seconds = Gauge(
            "collector_last_successful_run_timestamp_seconds",
            "Unix time of the last collector run without errors",
            registry=self.registry,
        )

    def record_request(self, method: str, endpoint: str, status: int, duration: float) -> None:
        """Record a finished HTTP request."""
        self.http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()
        self.http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
            duration
        )

    def record_db_error(self) -> None:
        self.db_errors_total.inc()

    def record_processed(self, metric_type: str) -> None:
        """Record a stored metric record."""
        self.processed_records_total.labels(metric_type=metric_type).inc()
        self.last_processed_timestamp_seconds.set(time.time())

    def record_processing_error(self, error_type: str) -> None:
        self.processing_errors_total.labels(error_type=error_type).inc()

    def record_collector_run(self, duration: float, success: bool) -> None:
        """Record a finished collector run."""
        self.collector_runs_total.inc()
        self.collector_run_duration_seconds.observe(duration)
        if success:
            self.collector_last_successful_run_timestamp_seconds.set(time.time())

    def record_data_points(self, data_type: str, count: int = 1) -> None:
        self.data_points_collected_total.labels(data_type=data_type).inc(count)

    def record_collector_error(self, data_type: str, error_type: str) -> None:
        self.collector_errors_total.labels(data_type=data_type, error_type=error_type).inc()

    def render(self) -> bytes:
        """Render all metrics in the Prometheus text format."""
        return generate_latest(self.registry)
