"""Moving lease: a short self-expiring lock on a single store key.

Serializes the expiry sweep across every engine sharing a channel, and
keeps cancels and clears from running while a sweep relocates ids.

The lease is set with SET NX EX, so a holder that dies simply lets it
expire. Two ways to take it:

    # Best effort: skip the guarded work if someone else holds it
    if await lease.try_acquire():
        await sweep()

    # Blocking: wait with exponential backoff, release on exit
    async with lease.hold():
        await remove_everywhere(job_id)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from laneq.store.base import Store

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TTL = 1  # Seconds
DEFAULT_WAIT_INITIAL = 0.01
DEFAULT_WAIT_MAX = 0.5
DEFAULT_WAIT_MULTIPLIER = 2.0


class MovingLease:
    """Advisory lock held through a single expiring store key.

    Args:
        store: Store adapter holding the key
        key: Lock key (``{channel}.moving_lock``)
        ttl: Lease lifetime in seconds
        wait_initial: First backoff delay while waiting in ``acquire``
        wait_max: Upper bound for a single backoff delay
        wait_multiplier: Backoff growth factor
    """

    def __init__(
        self,
        store: Store,
        key: str,
        ttl: int = DEFAULT_LEASE_TTL,
        wait_initial: float = DEFAULT_WAIT_INITIAL,
        wait_max: float = DEFAULT_WAIT_MAX,
        wait_multiplier: float = DEFAULT_WAIT_MULTIPLIER,
    ):
        if ttl <= 0:
            raise ValueError("Lease ttl must be positive")
        self.store = store
        self.key = key
        self.ttl = ttl
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.wait_multiplier = wait_multiplier
        self.token = uuid4().hex

    async def try_acquire(self) -> bool:
        """Take the lease if it is free; never waits."""
        acquired = await self.store.set_if_absent(self.key, self.token, ttl=self.ttl)
        if acquired:
            logger.debug(f"Acquired lease {self.key}")
        return acquired

    async def acquire(self) -> None:
        """Wait until the lease is taken.

        There is no timeout: the lease's own expiry guarantees another
        holder eventually lets go.
        """
        delay = self.wait_initial
        attempts = 1
        while not await self.try_acquire():
            await asyncio.sleep(delay)
            delay = min(delay * self.wait_multiplier, self.wait_max)
            attempts += 1
        if attempts > 1:
            logger.debug(f"Acquired lease {self.key} after {attempts} attempts")

    async def release(self) -> bool:
        """Release the lease if this instance still holds it."""
        released = await self.store.delete_if_equals(self.key, self.token)
        if not released:
            logger.debug(f"Lease {self.key} expired before release")
        return released

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[MovingLease]:
        """Hold the lease for the duration of the block."""
        await self.acquire()
        try:
            yield self
        finally:
            await self.release()
