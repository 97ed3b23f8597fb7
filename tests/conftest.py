"""Global pytest configuration and fixtures.

Engine tests run against MemoryStore with a manual clock, so lease and
delay expiry are driven by ``clock.advance()`` instead of sleeping.
"""

from __future__ import annotations

import pytest

from laneq.observability.metrics import MetricsRegistry
from laneq.queue import PriorityQueue
from laneq.store.memory import MemoryStore

START_TIME = 1_700_000_000.0


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at a fixed Unix time."""
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> MemoryStore:
    """In-memory store following the manual clock."""
    return MemoryStore(clock=clock)


@pytest.fixture
def metrics() -> MetricsRegistry:
    """Metrics registry private to one test."""
    registry = MetricsRegistry()
    registry.initialize()
    return registry


@pytest.fixture
def queue(store: MemoryStore, clock: ManualClock, metrics: MetricsRegistry) -> PriorityQueue:
    """Engine with two lanes, "high" before "low"."""
    return PriorityQueue(
        store,
        channel="test",
        priorities=("high", "low"),
        default_ttr=5,
        clock=clock,
        metrics=metrics,
    )
