"""Prometheus metrics for dtinject.

Exposes metrics for monitoring the injection pipeline.
"""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class MetricsCollector:
    """Prometheus metrics collector for the injection pipeline.

    Provides metrics for:
    - Pipeline invocations and their terminal state
    - Secret replication against the API server
    - Lifecycle events sent for pods
    """

    def __init__(
        self,
        namespace: str = "dtinject",
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics.

        Args:
            namespace: Prometheus namespace prefix for all metrics.
            registry: Registry to register the metrics with (default registry if None).
        """
        self.namespace = namespace
        registry = registry if registry is not None else REGISTRY

        self.pipeline_runs_total = Counter(
            f"{namespace}_pipeline_runs_total",
            "Total pipeline invocations by terminal state",
            ["outcome"],  # noop, mutated, reinvoked, unchanged, failed
            registry=registry,
        )

        self.pipeline_duration = Histogram(
            f"{namespace}_pipeline_duration_seconds",
            "Time spent in one pipeline invocation",
            ["outcome"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.secret_replications_total = Counter(
            f"{namespace}_secret_replications_total",
            "Secret replication attempts",
            ["secret", "result"],  # present, created, conflict, source_missing, error
            registry=registry,
        )

        self.pod_events_total = Counter(
            f"{namespace}_pod_events_total",
            "Lifecycle events recorded for pods",
            ["reason"],
            registry=registry,
        )

    def record_pipeline_run(self, outcome: str, duration_seconds: float) -> None:
        """Record one finished pipeline invocation.

        Args:
            outcome: Terminal state of the invocation.
            duration_seconds: Wall time of the invocation.
        """
        self.pipeline_runs_total.labels(outcome=outcome).inc()
        self.pipeline_duration.labels(outcome=outcome).observe(duration_seconds)

    def record_secret_replication(self, secret: str, result: str) -> None:
        """Record the result of one replication attempt."""
        self.secret_replications_total.labels(secret=secret, result=result).inc()

    def record_pod_event(self, reason: str) -> None:
        """Record an emitted pod lifecycle event."""
        self.pod_events_total.labels(reason=reason).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector.

    Returns:
        The global MetricsCollector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
