"""Exceptions raised by the queue engine and its store adapters."""

from __future__ import annotations

from typing import Any


class QueueError(Exception):
    """Base class for queue errors."""


class InvalidId(QueueError, ValueError):
    """Job id is not a positive integer."""

    def __init__(self, job_id: Any):
        self.job_id = job_id
        super().__init__(f"Unknown message ID: {job_id!r}")


class UnsupportedPriority(QueueError):
    """Priority lane is not one of the configured lanes."""

    def __init__(self, priority: str, supported: tuple[str, ...]):
        self.priority = priority
        self.supported = supported
        super().__init__(
            f"Priority {priority!r} is not supported, expected one of: {', '.join(supported)}"
        )


class StoreUnavailable(QueueError):
    """The backing store could not be reached or timed out."""
