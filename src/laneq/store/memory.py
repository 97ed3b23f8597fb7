"""In-memory store adapter.

Keeps every structure in process-local dicts and lists. Intended for tests
and local development: nothing survives a restart and nothing is shared
between processes. Key expiry follows the injected clock so tests can move
time forward without sleeping.
"""

from __future__ import annotations

import asyncio
import fnmatch
import time
from collections import deque
from collections.abc import Callable, Sequence
from typing import Any

from laneq.store.base import ScoreBound, Store, StoreValue


def _encode(value: StoreValue) -> bytes:
    """Encode a value the way Redis stores it."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        return b"1" if value else b"0"
    return str(value).encode()


def _bound(value: ScoreBound) -> float:
    if isinstance(value, str):
        return float(value.replace("+inf", "inf"))
    return float(value)


class MemoryStore(Store):
    """Store adapter over plain Python containers.

    Args:
        clock: Returns the current Unix time; drives key expiry
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._condition: asyncio.Condition | None = None
        self._condition_loop: asyncio.AbstractEventLoop | None = None

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _purge(self, key: str) -> None:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= self.clock():
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _lookup(self, key: str, kind: type) -> Any:
        self._purge(key)
        value = self._data.get(key)
        if value is not None and type(value) is not kind:
            raise TypeError(f"WRONGTYPE key {key} holds {type(value).__name__}")
        return value

    def _create(self, key: str, kind: type) -> Any:
        value = self._lookup(key, kind)
        if value is None:
            value = kind()
            self._data[key] = value
        return value

    def _drop_if_empty(self, key: str) -> None:
        # Redis removes empty containers
        if not self._data.get(key):
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _get_condition(self) -> asyncio.Condition:
        # Conditions bind to the loop that first waits on them
        loop = asyncio.get_running_loop()
        if self._condition is None or self._condition_loop is not loop:
            self._condition = asyncio.Condition()
            self._condition_loop = loop
        return self._condition

    async def _notify(self) -> None:
        condition = self._get_condition()
        async with condition:
            condition.notify_all()

    # -------------------------------------------------------------------------
    # Strings and keys
    # -------------------------------------------------------------------------

    async def set_if_absent(self, key: str, value: StoreValue, ttl: int | None = None) -> bool:
        self._purge(key)
        if key in self._data:
            return False
        self._data[key] = _encode(value)
        if ttl is not None:
            self._expires[key] = self.clock() + ttl
        return True

    async def delete_if_equals(self, key: str, value: StoreValue) -> bool:
        if self._lookup(key, bytes) != _encode(value):
            return False
        await self.delete(key)
        return True

    async def get(self, key: str) -> bytes | None:
        return self._lookup(key, bytes)

    async def incr(self, key: str) -> int:
        current = self._lookup(key, bytes)
        value = int(current) + 1 if current is not None else 1
        self._data[key] = _encode(value)
        return value

    async def keys(self, pattern: str) -> list[str]:
        for key in list(self._data):
            self._purge(key)
        return [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            self._purge(key)
            if self._data.pop(key, None) is not None:
                deleted += 1
            self._expires.pop(key, None)
        return deleted

    # -------------------------------------------------------------------------
    # Hashes
    # -------------------------------------------------------------------------

    async def hset(self, key: str, field: StoreValue, value: StoreValue) -> None:
        self._create(key, dict)[_encode(field)] = _encode(value)

    async def hget(self, key: str, field: StoreValue) -> bytes | None:
        table = self._lookup(key, dict)
        return table.get(_encode(field)) if table else None

    async def hdel(self, key: str, field: StoreValue) -> int:
        table = self._lookup(key, dict)
        if not table or table.pop(_encode(field), None) is None:
            return 0
        self._drop_if_empty(key)
        return 1

    async def hexists(self, key: str, field: StoreValue) -> bool:
        table = self._lookup(key, dict)
        return bool(table) and _encode(field) in table

    async def hincrby(self, key: str, field: StoreValue, amount: int = 1) -> int:
        table = self._create(key, dict)
        name = _encode(field)
        value = int(table.get(name, b"0")) + amount
        table[name] = _encode(value)
        return value

    async def hlen(self, key: str) -> int:
        return len(self._lookup(key, dict) or ())

    # -------------------------------------------------------------------------
    # Sorted sets
    # -------------------------------------------------------------------------

    def _zset(self, key: str) -> dict[bytes, float]:
        # Redis zsets share the dict shape with hashes; tag them apart
        return self._create(key, _ZSet)

    async def zadd(self, key: str, member: StoreValue, score: float) -> None:
        self._zset(key)[_encode(member)] = float(score)

    async def zrem(self, key: str, member: StoreValue) -> int:
        zset = self._lookup(key, _ZSet)
        if not zset or zset.pop(_encode(member), None) is None:
            return 0
        self._drop_if_empty(key)
        return 1

    def _zrange(self, key: str, min_score: ScoreBound, max_score: ScoreBound) -> list[bytes]:
        zset = self._lookup(key, _ZSet)
        if not zset:
            return []
        low, high = _bound(min_score), _bound(max_score)
        matched = [(score, member) for member, score in zset.items() if low <= score <= high]
        return [member for _, member in sorted(matched)]

    async def zrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> list[bytes]:
        return self._zrange(key, min_score, max_score)

    async def zremrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> int:
        members = self._zrange(key, min_score, max_score)
        zset = self._lookup(key, _ZSet)
        for member in members:
            del zset[member]
        if members:
            self._drop_if_empty(key)
        return len(members)

    async def zcard(self, key: str) -> int:
        return len(self._lookup(key, _ZSet) or ())

    def zscore(self, key: str, member: StoreValue) -> float | None:
        """Score of a member, for assertions in tests."""
        zset = self._lookup(key, _ZSet)
        return zset.get(_encode(member)) if zset else None

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    async def lpush(self, key: str, value: StoreValue) -> int:
        items = self._create(key, deque)
        items.appendleft(_encode(value))
        await self._notify()
        return len(items)

    async def rpush(self, key: str, value: StoreValue) -> int:
        items = self._create(key, deque)
        items.append(_encode(value))
        await self._notify()
        return len(items)

    async def rpop(self, key: str) -> bytes | None:
        items = self._lookup(key, deque)
        if not items:
            return None
        value: bytes = items.pop()
        self._drop_if_empty(key)
        return value

    async def brpop(self, keys: Sequence[str], timeout: float) -> tuple[str, bytes] | None:
        if timeout <= 0:
            raise ValueError("brpop timeout must be positive")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        condition = self._get_condition()

        async with condition:
            while True:
                for key in keys:
                    value = await self.rpop(key)
                    if value is not None:
                        return key, value

                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                try:
                    await asyncio.wait_for(condition.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    return None

    async def lrem(self, key: str, value: StoreValue) -> int:
        items = self._lookup(key, deque)
        if not items:
            return 0
        target = _encode(value)
        kept = deque(item for item in items if item != target)
        removed = len(items) - len(kept)
        self._data[key] = kept
        self._drop_if_empty(key)
        return removed

    async def llen(self, key: str) -> int:
        return len(self._lookup(key, deque) or ())

    def lrange(self, key: str) -> list[bytes]:
        """Whole list head to tail, for assertions in tests."""
        return list(self._lookup(key, deque) or ())

    # -------------------------------------------------------------------------
    # Queue scripts
    # -------------------------------------------------------------------------

    async def claim(
        self,
        messages_key: str,
        reserved_key: str,
        attempts_key: str,
        member: StoreValue,
        now: int,
    ) -> tuple[bytes, int] | None:
        # No await in between: runs as one step on the event loop
        table = self._lookup(messages_key, dict)
        message = table.get(_encode(member)) if table else None
        if message is None:
            return None
        ttr = int(message.split(b";", 1)[0])
        self._zset(reserved_key)[_encode(member)] = float(now + ttr)
        attempts = self._create(attempts_key, dict)
        attempt = int(attempts.get(_encode(member), b"0")) + 1
        attempts[_encode(member)] = _encode(attempt)
        return message, attempt

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        return True

    def flush(self) -> None:
        """Drop every key."""
        self._data.clear()
        self._expires.clear()


class _ZSet(dict):  # type: ignore[type-arg]
    """Sorted set storage: member -> score."""
