"""
Shared metrics configuration for the permission engine.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, start_http_server


class MetricsCollector:
    """Centralized metrics collector for the permission engine.

    Each collector owns its registry unless one is passed in, so several
    engines (or test cases) can coexist in one process without duplicate
    metric registration.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_permission_metrics()

    def _setup_permission_metrics(self):
        """Set up decision and cache metrics."""
        self._metrics["permission_checks_total"] = Counter(
            "permission_checks_total",
            "Total permission checks",
            ["mode", "decision"],
            registry=self.registry
        )

        self._metrics["permission_check_duration_seconds"] = Histogram(
            "permission_check_duration_seconds",
            "Permission check duration in seconds",
            ["mode"],
            registry=self.registry
        )

        self._metrics["decision_cache_lookups_total"] = Counter(
            "decision_cache_lookups_total",
            "Total decision cache lookups",
            ["result"],
            registry=self.registry
        )

        self._metrics["decision_cache_errors_total"] = Counter(
            "decision_cache_errors_total",
            "Total decision cache faults",
            ["operation"],
            registry=self.registry
        )

        self._metrics["decision_cache_invalidations_total"] = Counter(
            "decision_cache_invalidations_total",
            "Total decision cache invalidations",
            registry=self.registry
        )

    def get_sample_value(self, name: str, **labels) -> Optional[float]:
        """Read the current value of a sample from the registry."""
        return self.registry.get_sample_value(name, labels or None)

    def start_metrics_server(self, port: int = 9090):
        """Start the Prometheus metrics server."""
        start_http_server(port, registry=self.registry)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_check(self, mode: str, allowed: bool, duration: float):
        """Record a completed permission check."""
        decision = "allow" if allowed else "deny"
        self._metrics["permission_checks_total"].labels(mode=mode, decision=decision).inc()
        self._metrics["permission_check_duration_seconds"].labels(mode=mode).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name not in self._metrics:
            return
        metric = self._metrics[metric_name]
        if labels:
            metric = metric.labels(**labels)
        metric.inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
