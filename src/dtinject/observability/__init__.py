"""dtinject Observability package.

Logging and metrics for the injection pipeline.
"""

from dtinject.observability.logging import admission_context, configure_logging, get_logger
from dtinject.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "MetricsCollector",
    "admission_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
]
