"""
Shared metrics configuration for the condominium back-office API.
"""

from typing import Any, Dict, Optional, Sequence

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for the service.

    Every collector owns its registry unless one is passed in, so several
    application instances (one per test, for example) never collide on
    metric names in the process-wide default registry.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _register(self, kind, name: str, documentation: str, labels: Sequence[str] = ()):
        metric = kind(name, documentation, list(labels), registry=self.registry)
        self._metrics[name] = metric
        return metric

    def _setup_metrics(self):
        """Set up HTTP, cache, store and rate limiter metrics."""
        self._register(Info, "service_info", "Service information").info({
            "service": self.service_name,
            "version": "1.0.0",
        })

        # HTTP
        self._register(Counter, "http_requests_total", "Total HTTP requests",
                       ["method", "endpoint", "status_code"])
        self._register(Histogram, "http_request_duration_seconds", "HTTP request duration in seconds",
                       ["method", "endpoint"])
        self._register(Counter, "health_check_total", "Total health check requests", ["status"])

        # Response cache: result is hit, miss or error
        self._register(Counter, "cache_lookups_total", "Response cache lookups", ["result"])
        self._register(Counter, "cache_writes_total", "Response cache writes", ["result"])
        self._register(Counter, "cache_invalidated_keys_total", "Cache keys deleted by invalidation")

        self._register(Gauge, "store_available", "1 when the shared store is ready, 0 otherwise")

        # Rate limiter: decision is admitted, rejected or fail_open
        self._register(Counter, "rate_limit_decisions_total", "Rate limiter admission decisions",
                       ["policy", "decision"])

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_cache_lookup(self, result: str):
        self._metrics["cache_lookups_total"].labels(result=result).inc()

    def record_cache_write(self, result: str):
        self._metrics["cache_writes_total"].labels(result=result).inc()

    def record_invalidation(self, deleted: int):
        self._metrics["cache_invalidated_keys_total"].inc(deleted)

    def record_rate_limit(self, policy: str, decision: str):
        self._metrics["rate_limit_decisions_total"].labels(policy=policy, decision=decision).inc()

    def set_store_available(self, available: bool):
        self._metrics["store_available"].set(1 if available else 0)

    def render(self) -> bytes:
        """Render the registry in Prometheus exposition format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
