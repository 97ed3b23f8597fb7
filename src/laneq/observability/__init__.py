"""Observability for laneq.

Provides structured logging and metrics:
- JSON or console logging with channel/job context
- Prometheus counters for job transitions
"""

from laneq.observability.logging import (
    LogContext,
    channel_var,
    configure_logging,
    job_id_var,
    worker_var,
)
from laneq.observability.metrics import (
    MetricsRegistry,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "channel_var",
    "job_id_var",
    "worker_var",
    # Metrics
    "MetricsRegistry",
    "get_metrics",
    "metrics_registry",
]
