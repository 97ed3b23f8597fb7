"""Prometheus metrics for queue engines.

Provides counters for every job transition:
- pushes, reservations, acknowledgements, removals
- jobs moved back to waiting by sweeps
- reservation latency

Usage:
    from laneq.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.jobs_pushed_total.labels(channel="emails", priority="high").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from laneq.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass

    def observe(self, value: float) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics.

    Each registry owns its CollectorRegistry so several engines (or tests)
    can coexist in one process.
    """

    enabled: bool = True

    jobs_pushed_total: Any = None
    jobs_reserved_total: Any = None
    jobs_acknowledged_total: Any = None
    jobs_removed_total: Any = None
    jobs_swept_total: Any = None
    reserve_duration_seconds: Any = None

    _initialized: bool = field(default=False, repr=False)
    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not self.enabled:
            noop = NoOpMetric()
            self.jobs_pushed_total = noop
            self.jobs_reserved_total = noop
            self.jobs_acknowledged_total = noop
            self.jobs_removed_total = noop
            self.jobs_swept_total = noop
            self.reserve_duration_seconds = noop
            self._initialized = True
            logger.info("Metrics are disabled")
            return

        self._registry = CollectorRegistry()

        self.jobs_pushed_total = Counter(
            "laneq_jobs_pushed_total",
            "Jobs pushed",
            ["channel", "priority", "delayed"],
            registry=self._registry,
        )

        self.jobs_reserved_total = Counter(
            "laneq_jobs_reserved_total",
            "Jobs reserved",
            ["channel", "priority"],
            registry=self._registry,
        )

        self.jobs_acknowledged_total = Counter(
            "laneq_jobs_acknowledged_total",
            "Jobs deleted after successful handling",
            ["channel"],
            registry=self._registry,
        )

        self.jobs_removed_total = Counter(
            "laneq_jobs_removed_total",
            "Jobs cancelled",
            ["channel"],
            registry=self._registry,
        )

        self.jobs_swept_total = Counter(
            "laneq_jobs_swept_total",
            "Jobs moved back to waiting by a sweep",
            ["channel", "source"],
            registry=self._registry,
        )

        self.reserve_duration_seconds = Histogram(
            "laneq_reserve_duration_seconds",
            "Reserve call latency in seconds, blocking time included",
            ["channel"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
            registry=self._registry,
        )

        self._initialized = True
        logger.debug("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry(enabled=settings.enable_metrics)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
