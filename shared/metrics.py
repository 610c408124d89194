"""
Prometheus metrics for the rate limiter.
"""

import threading
from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY


class RateLimitMetrics:
    """Counters and timings for token bucket decisions."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Register limiter metrics."""
        self._metrics["decisions_total"] = Counter(
            "ratelimit_decisions_total",
            "Token bucket decisions",
            ["bucket", "decision"],
            registry=self.registry
        )

        self._metrics["cas_conflicts_total"] = Counter(
            "ratelimit_cas_conflicts_total",
            "Compare-and-set attempts lost to a concurrent writer",
            ["bucket"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "ratelimit_errors_total",
            "Limiter failures surfaced to callers",
            ["bucket", "error"],
            registry=self.registry
        )

        self._metrics["acquire_duration_seconds"] = Histogram(
            "ratelimit_acquire_duration_seconds",
            "Time spent in acquire, including retries",
            ["bucket"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_decision(self, bucket: str, decision: str, duration: float):
        """Record an acquire outcome."""
        self._metrics["decisions_total"].labels(bucket=bucket, decision=decision).inc()
        self._metrics["acquire_duration_seconds"].labels(bucket=bucket).observe(duration)

    def record_conflict(self, bucket: str):
        """Record a lost compare-and-set race."""
        self._metrics["cas_conflicts_total"].labels(bucket=bucket).inc()

    def record_error(self, bucket: str, error: str):
        """Record a failure surfaced to the caller."""
        self._metrics["errors_total"].labels(bucket=bucket, error=error).inc()


_metrics: Optional[RateLimitMetrics] = None
_lock = threading.Lock()


def get_metrics() -> RateLimitMetrics:
    """Get the process-wide metrics instance bound to the default registry."""
    global _metrics
    with _lock:
        if _metrics is None:
            _metrics = RateLimitMetrics()
        return _metrics
