"""
Shared metrics configuration for the Search Gateway.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns a ``CollectorRegistry`` so several service instances
    (tests, multiple apps in one process) never clash on metric names.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_gateway_metrics()

    def _setup_gateway_metrics(self):
        """Set up search-gateway metrics."""
        self._metrics["search_queries_total"] = Counter(
            "search_queries_total",
            "Total search queries answered by the backend",
            registry=self.registry
        )

        self._metrics["search_query_duration_seconds"] = Histogram(
            "search_query_duration_seconds",
            "Search round-trip duration in seconds",
            registry=self.registry
        )

        self._metrics["documents_indexed_total"] = Counter(
            "documents_indexed_total",
            "Total documents indexed",
            ["mode"],
            registry=self.registry
        )

        self._metrics["rate_limit_rejections_total"] = Counter(
            "rate_limit_rejections_total",
            "Requests rejected by the per-tenant token bucket",
            ["tenant_id"],
            registry=self.registry
        )

        self._metrics["auth_failures_total"] = Counter(
            "auth_failures_total",
            "Requests rejected during authentication",
            ["reason"],
            registry=self.registry
        )

        self._metrics["backend_errors_total"] = Counter(
            "backend_errors_total",
            "Search backend failures by operation",
            ["operation"],
            registry=self.registry
        )

        self._metrics["rate_limited_tenants"] = Gauge(
            "rate_limited_tenants",
            "Tenants with a live token bucket",
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus exposition format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_search(self, duration: float):
        """Record a successful search round trip."""
        self._metrics["search_queries_total"].inc()
        self._metrics["search_query_duration_seconds"].observe(duration)

    def record_documents_indexed(self, count: int, mode: str = "single"):
        """Record documents accepted by the backend."""
        if count > 0:
            self._metrics["documents_indexed_total"].labels(mode=mode).inc(count)

    def record_rate_limit_rejection(self, tenant_id: str):
        """Record a token bucket rejection."""
        self._metrics["rate_limit_rejections_total"].labels(tenant_id=tenant_id).inc()

    def record_auth_failure(self, reason: str):
        """Record an authentication rejection."""
        self._metrics["auth_failures_total"].labels(reason=reason).inc()

    def record_backend_error(self, operation: str):
        """Record a backend failure."""
        self._metrics["backend_errors_total"].labels(operation=operation).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            if labels:
                metric = metric.labels(**labels)
            metric.set(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
