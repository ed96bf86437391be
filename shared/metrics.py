"""
Shared metrics configuration for the Access Layer.
"""

from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for services."""
    
    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
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
        
        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )
        
        # Authorization metrics
        self._metrics["authz_decisions_total"] = Counter(
            "authz_decisions_total",
            "Total authorization decisions",
            ["decision", "resource", "check"],
            registry=self.registry
        )
        
        self._metrics["authz_evaluation_duration_seconds"] = Histogram(
            "authz_evaluation_duration_seconds",
            "Policy evaluation duration in seconds",
            ["check"],
            registry=self.registry
        )
        
        self._metrics["redactions_total"] = Counter(
            "redactions_total",
            "Total payloads passed through investor redaction",
            registry=self.registry
        )
    
    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)
    
    def record_authz_decision(self, allowed: bool, resource: str, check: str):
        """Record an authorization decision."""
        self._metrics["authz_decisions_total"].labels(
            decision="allow" if allowed else "deny",
            resource=resource,
            check=check
        ).inc()
    
    def record_redaction(self):
        self._metrics["redactions_total"].inc()
    
    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()
    
    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to the default (unregistered) registry are shared per
    service name; an explicit registry always gets a fresh collector.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)
    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
