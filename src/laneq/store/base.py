"""Base store interface.

Defines the primitive operations the queue engine needs from a shared
key-value/sorted-set store. String values always come back as ``bytes``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

# Values accepted by write operations; ints and strs are stored as their
# decimal/UTF-8 encoding, the way Redis does.
StoreValue = bytes | str | int

# Score bounds accept the Redis "-inf"/"+inf" spellings.
ScoreBound = float | str


class Store(ABC):
    """Abstract base class for store adapters."""

    # -------------------------------------------------------------------------
    # Strings and keys
    # -------------------------------------------------------------------------

    @abstractmethod
    async def set_if_absent(self, key: str, value: StoreValue, ttl: int | None = None) -> bool:
        """Set ``key`` only if it does not exist.

        Args:
            key: Key to set
            value: Value to store
            ttl: Expiry in seconds (None for no expiry)

        Returns:
            True if the key was set
        """
        ...

    @abstractmethod
    async def delete_if_equals(self, key: str, value: StoreValue) -> bool:
        """Atomically delete ``key`` if it currently holds ``value``."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        ...

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter and return the new value."""
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern."""
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        ...

    # -------------------------------------------------------------------------
    # Hashes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def hset(self, key: str, field: StoreValue, value: StoreValue) -> None:
        ...

    @abstractmethod
    async def hget(self, key: str, field: StoreValue) -> bytes | None:
        ...

    @abstractmethod
    async def hdel(self, key: str, field: StoreValue) -> int:
        ...

    @abstractmethod
    async def hexists(self, key: str, field: StoreValue) -> bool:
        ...

    @abstractmethod
    async def hincrby(self, key: str, field: StoreValue, amount: int = 1) -> int:
        ...

    @abstractmethod
    async def hlen(self, key: str) -> int:
        ...

    # -------------------------------------------------------------------------
    # Sorted sets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def zadd(self, key: str, member: StoreValue, score: float) -> None:
        ...

    @abstractmethod
    async def zrem(self, key: str, member: StoreValue) -> int:
        ...

    @abstractmethod
    async def zrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> list[bytes]:
        """Members with min_score <= score <= max_score, lowest score first."""
        ...

    @abstractmethod
    async def zremrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> int:
        """Remove members with min_score <= score <= max_score (inclusive)."""
        ...

    @abstractmethod
    async def zcard(self, key: str) -> int:
        ...

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    @abstractmethod
    async def lpush(self, key: str, value: StoreValue) -> int:
        ...

    @abstractmethod
    async def rpush(self, key: str, value: StoreValue) -> int:
        ...

    @abstractmethod
    async def rpop(self, key: str) -> bytes | None:
        ...

    @abstractmethod
    async def brpop(self, keys: Sequence[str], timeout: float) -> tuple[str, bytes] | None:
        """Blocking pop from the tail of the first non-empty list.

        Lists are checked in the given order, so earlier keys take
        precedence. ``timeout`` must be positive.

        Returns:
            (key, value) or None if nothing arrived within ``timeout``
        """
        ...

    @abstractmethod
    async def lrem(self, key: str, value: StoreValue) -> int:
        """Remove every occurrence of ``value`` from a list."""
        ...

    @abstractmethod
    async def llen(self, key: str) -> int:
        ...

    # -------------------------------------------------------------------------
    # Queue scripts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def claim(
        self,
        messages_key: str,
        reserved_key: str,
        attempts_key: str,
        member: StoreValue,
        now: int,
    ) -> tuple[bytes, int] | None:
        """Atomically reserve a job whose message still exists.

        Reads the "ttr;payload" message of ``member``; if present, scores
        the member ``now + ttr`` in the reserved set and increments its
        attempts. Nothing is written when the message is gone.

        Returns:
            (message, attempt) or None if the message no longer exists
        """
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def ping(self) -> bool:
        """Check store connectivity."""
        ...

    async def close(self) -> None:
        """Release connections held by the adapter."""
        return None
