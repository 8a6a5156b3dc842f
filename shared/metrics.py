"""
Shared metrics configuration for the Relay Access service.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

# Source fetches are slow network calls bounded by the source timeout.
FETCH_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several app instances (tests, workers)
    can coexist in one process without duplicated time series.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None, version: str = "1.0.0"):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": version})

        self._counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status_code"])
        self._histogram("http_request_duration_seconds", "HTTP request duration in seconds", ["method", "endpoint"])
        self._counter("health_check_total", "Total health check requests", ["status"])
        self._counter("errors_total", "Errors returned to callers", ["error_type", "service"])

        # Transform mode
        self._counter("source_cache_events_total", "Source cache lookups by outcome", ["source", "result"])
        self._histogram(
            "source_fetch_duration_seconds",
            "Source document fetch duration in seconds",
            ["source"],
            buckets=FETCH_BUCKETS,
        )

        # Proxy mode
        self._counter("proxy_requests_total", "Proxy requests by safety verdict", ["verdict"])
        self._counter("proxy_upstream_responses_total", "Upstream responses by status class", ["status_class"])

    def _counter(self, name: str, documentation: str, labels):
        self._metrics[name] = Counter(name, documentation, labels, registry=self.registry)

    def _histogram(self, name: str, documentation: str, labels, **kwargs):
        self._metrics[name] = Histogram(name, documentation, labels, registry=self.registry, **kwargs)

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

    def record_cache_event(self, source: str, result: str):
        """Record a source cache lookup: hit, miss or stale."""
        self._metrics["source_cache_events_total"].labels(source=source, result=result).inc()

    def record_proxy_verdict(self, verdict: str):
        self._metrics["proxy_requests_total"].labels(verdict=verdict).inc()

    def record_upstream_response(self, status_code: int):
        self._metrics["proxy_upstream_responses_total"].labels(status_class=f"{status_code // 100}xx").inc()

    @contextmanager
    def time_source_fetch(self, source: str):
        """Time a source document fetch, successful or not."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self._metrics["source_fetch_duration_seconds"].labels(source=source).observe(
                time.perf_counter() - start_time
            )


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
