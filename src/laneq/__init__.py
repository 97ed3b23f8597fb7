"""laneq: priority delay queue on a shared Redis-like store.

Provides at-least-once job delivery with:
- Priority lanes dispatched in configured order
- Delayed jobs
- Time-to-run leases with automatic re-delivery
- Attempt counting

Example:
    from laneq import PriorityQueue, RedisStore

    queue = PriorityQueue(RedisStore.from_url("redis://localhost:6379/0"))
    job_id = await queue.enqueue(b"payload", ttr=60)

    job = await queue.reserve(timeout=5)
    await queue.acknowledge(job.id)
"""

from laneq.errors import InvalidId, QueueError, StoreUnavailable, UnsupportedPriority
from laneq.queue import (
    DEFAULT_CHANNEL,
    DEFAULT_PRIORITIES,
    DEFAULT_TTR,
    JobStatus,
    PriorityQueue,
    QueueBackend,
    QueueStats,
    ReservedJob,
)
from laneq.store import MemoryStore, RedisStore, Store
from laneq.worker import JobHandler, QueueWorker, WorkerConfig

__all__ = [
    # Engine
    "PriorityQueue",
    "QueueBackend",
    "ReservedJob",
    "QueueStats",
    "JobStatus",
    "DEFAULT_CHANNEL",
    "DEFAULT_PRIORITIES",
    "DEFAULT_TTR",
    # Stores
    "Store",
    "RedisStore",
    "MemoryStore",
    # Worker
    "QueueWorker",
    "WorkerConfig",
    "JobHandler",
    # Errors
    "QueueError",
    "InvalidId",
    "UnsupportedPriority",
    "StoreUnavailable",
]
