"""Priority delay queue engine over a shared store.

Provides at-least-once job delivery with:
- Multiple priority lanes, dispatched in configured order
- Delayed visibility via a sorted set of ready-at timestamps
- Time-to-run leases: reserved jobs whose lease lapses are re-delivered
- Attempt counting per job

All coordination state lives in the store; any number of engines may
share a channel. The expiry sweep is serialized by a one-second moving
lease and runs at most about once per second across all engines.

Example:
    store = RedisStore.from_url("redis://localhost:6379/0")
    queue = PriorityQueue(store, channel="emails", priorities=("high", "low"))

    job_id = await queue.enqueue(b"payload", ttr=60, priority="high")

    job = await queue.reserve(timeout=5)
    if job is not None:
        await handle(job.payload)
        await queue.acknowledge(job.id)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from laneq.errors import InvalidId, UnsupportedPriority
from laneq.keys import ChannelKeys
from laneq.lease import (
    DEFAULT_LEASE_TTL,
    DEFAULT_WAIT_INITIAL,
    DEFAULT_WAIT_MAX,
    DEFAULT_WAIT_MULTIPLIER,
    MovingLease,
)
from laneq.observability.metrics import MetricsRegistry, get_metrics

if TYPE_CHECKING:
    from laneq.config import Settings
    from laneq.store.base import Store

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CHANNEL = "queue"
DEFAULT_PRIORITIES = ("default",)
DEFAULT_TTR = 300  # 5 minutes

# Shortest wait handed to a blocking pop; anything below falls back to a
# non-blocking scan (Redis would round it to 0, which blocks forever)
MIN_BLOCK_TIMEOUT = 0.01


class JobStatus(str, Enum):
    """Job state as seen from the store."""

    WAITING = "waiting"
    RESERVED = "reserved"
    DONE = "done"


@dataclass(frozen=True)
class ReservedJob:
    """A job handed to a consumer under a time-to-run lease."""

    id: int
    payload: bytes
    ttr: int
    attempt: int
    priority: str


@dataclass(frozen=True)
class QueueStats:
    """Job counts for a channel."""

    waiting: int
    delayed: int
    reserved: int
    total: int
    done: int
    lanes: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize stats to dictionary."""
        return {
            "waiting": self.waiting,
            "delayed": self.delayed,
            "reserved": self.reserved,
            "total": self.total,
            "done": self.done,
            "lanes": dict(self.lanes),
        }


class QueueBackend(Protocol):
    """Operations a worker or an admin tool needs from a queue engine."""

    async def enqueue(
        self,
        payload: bytes | str,
        ttr: int | None = None,
        delay: int = 0,
        priority: str | None = None,
    ) -> int: ...

    async def reserve(self, timeout: float = 0) -> ReservedJob | None: ...

    async def acknowledge(self, job_id: int | str) -> None: ...

    async def cancel(self, job_id: int | str) -> bool: ...

    async def status(self, job_id: Any) -> JobStatus: ...

    async def clear(self) -> None: ...

    async def stats(self) -> QueueStats: ...


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_job_id(job_id: Any) -> int:
    """Validate a job id given as int or decimal string.

    Raises:
        InvalidId: If the id is not a positive integer
    """
    if isinstance(job_id, bool):
        raise InvalidId(job_id)
    if isinstance(job_id, int):
        value = job_id
    elif isinstance(job_id, (str, bytes)):
        text = job_id.decode() if isinstance(job_id, bytes) else job_id
        text = text.strip()
        # isdigit() alone accepts non-ASCII digits such as "²"
        if not (text.isascii() and text.isdigit()):
            raise InvalidId(job_id)
        value = int(text)
    else:
        raise InvalidId(job_id)
    if value <= 0:
        raise InvalidId(job_id)
    return value


class PriorityQueue:
    """Priority delay queue stored under a channel namespace.

    Store layout (see ChannelKeys):
    - message_id counter, messages and priority hashes written on enqueue
    - one waiting list per lane: LPUSH on enqueue, RPOP/BRPOP on reserve,
      RPUSH when a sweep returns a job
    - delayed and reserved sorted sets, scored by Unix seconds
    - attempts hash, incremented on every reservation

    Within a lane fresh jobs are served oldest first, and a job returned by
    a sweep is served before jobs that were already waiting.

    Args:
        store: Store adapter shared with every other engine on the channel
        channel: Queue name; prefix of every key
        priorities: Lanes, highest precedence first
        default_ttr: Time-to-run used when enqueue gets none
        clock: Returns the current Unix time; scores use whole seconds
        moving_lock_ttl: Lifetime of the moving lease in seconds
        lock_wait_initial: First backoff delay while waiting for the lease
        lock_wait_max: Largest backoff delay
        lock_wait_multiplier: Backoff growth factor
        metrics: Metrics registry (global registry if None)
    """

    def __init__(
        self,
        store: Store,
        channel: str = DEFAULT_CHANNEL,
        priorities: Sequence[str] = DEFAULT_PRIORITIES,
        default_ttr: int = DEFAULT_TTR,
        clock: Callable[[], float] = time.time,
        moving_lock_ttl: int = DEFAULT_LEASE_TTL,
        lock_wait_initial: float = DEFAULT_WAIT_INITIAL,
        lock_wait_max: float = DEFAULT_WAIT_MAX,
        lock_wait_multiplier: float = DEFAULT_WAIT_MULTIPLIER,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        lanes = tuple(priorities)
        if not lanes:
            raise ValueError("At least one priority lane is required")
        if len(set(lanes)) != len(lanes):
            raise ValueError(f"Duplicate priority lanes: {', '.join(lanes)}")
        if not _is_int(default_ttr) or default_ttr <= 0:
            raise ValueError("default_ttr must be a positive integer")

        self.store = store
        self.keys = ChannelKeys(channel)
        self.priorities = lanes
        self.default_ttr = default_ttr
        self._clock = clock
        self._lease = MovingLease(
            store,
            self.keys.moving_lock,
            ttl=moving_lock_ttl,
            wait_initial=lock_wait_initial,
            wait_max=lock_wait_max,
            wait_multiplier=lock_wait_multiplier,
        )
        self._metrics = metrics or get_metrics()
        self._waiting_keys = [self.keys.waiting(lane) for lane in lanes]

    @classmethod
    def from_settings(cls, store: Store, config: Settings | None = None) -> PriorityQueue:
        """Build an engine from application settings."""
        if config is None:
            from laneq.config import settings as config

        return cls(
            store,
            channel=config.channel,
            priorities=config.priority_lanes,
            default_ttr=config.default_ttr,
            moving_lock_ttl=config.moving_lock_ttl,
            lock_wait_initial=config.lock_wait_initial,
            lock_wait_max=config.lock_wait_max,
            lock_wait_multiplier=config.lock_wait_multiplier,
        )

    @property
    def channel(self) -> str:
        return self.keys.channel

    def _now(self) -> int:
        return int(self._clock())

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    async def enqueue(
        self,
        payload: bytes | str,
        ttr: int | None = None,
        delay: int = 0,
        priority: str | None = None,
    ) -> int:
        """Add a job to the queue.

        Args:
            payload: Opaque job body (str is stored UTF-8 encoded)
            ttr: Seconds a reservation lasts before the job is re-delivered
            delay: Seconds before the job becomes visible (0 for now)
            priority: Lane name (first configured lane if None)

        Returns:
            Job id

        Raises:
            UnsupportedPriority: If the lane is not configured; nothing is written
        """
        lane = self.priorities[0] if priority is None else priority
        if lane not in self.priorities:
            raise UnsupportedPriority(lane, self.priorities)

        ttr = self.default_ttr if ttr is None else ttr
        if not _is_int(ttr) or ttr <= 0:
            raise ValueError(f"ttr must be a positive integer, got {ttr!r}")
        if not _is_int(delay) or delay < 0:
            raise ValueError(f"delay must be a non-negative integer, got {delay!r}")

        body = payload.encode() if isinstance(payload, str) else payload

        job_id = await self.store.incr(self.keys.message_id)
        # Body and lane first: the id must not be visible before both exist
        await self.store.hset(self.keys.messages, job_id, b"%d;%s" % (ttr, body))
        await self.store.hset(self.keys.priority, job_id, lane)
        if not delay:
            await self.store.lpush(self.keys.waiting(lane), job_id)
        else:
            await self.store.zadd(self.keys.delayed, job_id, self._now() + delay)

        self._metrics.jobs_pushed_total.labels(
            channel=self.channel, priority=lane, delayed=str(bool(delay)).lower()
        ).inc()
        logger.debug(f"Job enqueued: {job_id} (lane {lane}, ttr {ttr}, delay {delay})")
        return job_id

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    async def reserve(self, timeout: float = 0) -> ReservedJob | None:
        """Take the next ready job under a time-to-run lease.

        Runs the expiry sweep first when the moving lease is free. Lanes
        are tried in configured order. With ``timeout == 0`` each lane is
        polled once; otherwise the call blocks on all lanes at once and
        waits at most ``timeout`` seconds in total.

        A popped id whose message was cancelled in the meantime is dropped
        and dispatch continues with the remaining budget.

        Returns:
            The reserved job, or None if nothing was ready in time
        """
        if timeout < 0:
            raise ValueError("timeout must not be negative")

        started = time.monotonic()
        deadline = started + timeout if timeout > 0 else None

        try:
            if await self._lease.try_acquire():
                await self._move_expired(self.keys.delayed, "delayed")
                await self._move_expired(self.keys.reserved, "reserved")

            while True:
                popped = await self._pop(deadline)
                if popped is None:
                    return None

                lane, job_id = popped
                # Message check and reserved/attempts writes in one store step
                claimed = await self.store.claim(
                    self.keys.messages,
                    self.keys.reserved,
                    self.keys.attempts,
                    job_id,
                    self._now(),
                )
                if claimed is None:
                    logger.warning(f"Job {job_id} was removed before it could be reserved")
                    continue

                message, attempt = claimed
                raw_ttr, payload = message.split(b";", 1)
                ttr = int(raw_ttr)

                self._metrics.jobs_reserved_total.labels(channel=self.channel, priority=lane).inc()
                logger.debug(f"Job reserved: {job_id} (attempt {attempt})")
                return ReservedJob(
                    id=job_id,
                    payload=payload,
                    ttr=ttr,
                    attempt=attempt,
                    priority=lane,
                )
        finally:
            self._metrics.reserve_duration_seconds.labels(channel=self.channel).observe(
                time.monotonic() - started
            )

    async def _pop(self, deadline: float | None) -> tuple[str, int] | None:
        """Pop the next id from the highest-precedence non-empty lane."""
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining >= MIN_BLOCK_TIMEOUT:
                result = await self.store.brpop(self._waiting_keys, remaining)
                if result is None:
                    return None
                key, value = result
                return self.keys.lane_of(key), int(value)

        for lane, key in zip(self.priorities, self._waiting_keys):
            value = await self.store.rpop(key)
            if value is not None:
                return lane, int(value)
        return None

    async def _move_expired(self, source: str, label: str) -> int:
        """Move ids whose score has passed from a sorted set to their lanes.

        Returns:
            Number of ids moved
        """
        now = self._now()
        expired = await self.store.zrangebyscore(source, "-inf", now)
        if not expired:
            return 0

        await self.store.zremrangebyscore(source, "-inf", now)

        moved = 0
        # Latest first, so the earliest-due id lands nearest the tail
        for member in reversed(expired):
            lane = await self.store.hget(self.keys.priority, member)
            if lane is None:
                logger.debug(f"Skipping swept job {member.decode()}: no longer queued")
                continue
            await self.store.rpush(self.keys.waiting(lane.decode()), member)
            moved += 1

        if moved:
            self._metrics.jobs_swept_total.labels(channel=self.channel, source=label).inc(moved)
            logger.debug(f"Moved {moved} {label} job(s) back to waiting")
        return moved

    async def acknowledge(self, job_id: int | str) -> None:
        """Delete a handled job from every table.

        Idempotent: acknowledging an unknown id does nothing.
        """
        await self.store.zrem(self.keys.reserved, job_id)
        await self.store.hdel(self.keys.attempts, job_id)
        deleted = await self.store.hdel(self.keys.messages, job_id)
        await self.store.hdel(self.keys.priority, job_id)

        if deleted:
            self._metrics.jobs_acknowledged_total.labels(channel=self.channel).inc()
            logger.debug(f"Job acknowledged: {job_id}")

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def cancel(self, job_id: int | str) -> bool:
        """Remove a job wherever it is.

        Waits for the moving lease so a concurrent sweep cannot put the id
        back into a waiting list.

        Returns:
            True if the job existed, False otherwise
        """
        async with self._lease.hold():
            if not await self.store.hdel(self.keys.messages, job_id):
                return False

            lane = await self.store.hget(self.keys.priority, job_id)
            await self.store.zrem(self.keys.delayed, job_id)
            await self.store.zrem(self.keys.reserved, job_id)
            if lane is not None:
                await self.store.lrem(self.keys.waiting(lane.decode()), job_id)
            await self.store.hdel(self.keys.attempts, job_id)
            await self.store.hdel(self.keys.priority, job_id)

        self._metrics.jobs_removed_total.labels(channel=self.channel).inc()
        logger.info(f"Job cancelled: {job_id}")
        return True

    async def status(self, job_id: Any) -> JobStatus:
        """Report where a job is.

        A job counts as reserved once it has been reserved at least once,
        until it is acknowledged or cancelled; a lapsed lease still reads
        as reserved until the next sweep re-delivers it. Unknown ids report
        DONE.

        Raises:
            InvalidId: If the id is not a positive integer
        """
        value = parse_job_id(job_id)

        if await self.store.hexists(self.keys.attempts, value):
            return JobStatus.RESERVED

        if await self.store.hexists(self.keys.messages, value):
            return JobStatus.WAITING

        return JobStatus.DONE

    async def clear(self) -> None:
        """Delete every key of the channel. Irreversible."""
        async with self._lease.hold():
            # The lease key goes when the block releases it
            keys = [
                key
                for key in await self.store.keys(self.keys.pattern)
                if key != self.keys.moving_lock
            ]
            if keys:
                await self.store.delete(*keys)

        logger.warning(f"Channel cleared: {self.channel}")

    async def stats(self) -> QueueStats:
        """Count jobs per table.

        ``done`` is derived from the id counter, so it includes cancelled
        jobs.
        """
        lanes = {
            lane: await self.store.llen(key)
            for lane, key in zip(self.priorities, self._waiting_keys)
        }
        waiting = sum(lanes.values())
        delayed = await self.store.zcard(self.keys.delayed)
        reserved = await self.store.zcard(self.keys.reserved)
        last_id = await self.store.get(self.keys.message_id)
        total = int(last_id) if last_id is not None else 0

        return QueueStats(
            waiting=waiting,
            delayed=delayed,
            reserved=reserved,
            total=total,
            done=max(total - waiting - delayed - reserved, 0),
            lanes=lanes,
        )
