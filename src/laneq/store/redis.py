"""Redis store adapter.

Wraps a redis-py async client. Connection and timeout failures are
re-raised as StoreUnavailable; the adapter never retries.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, cast

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from laneq.errors import StoreUnavailable
from laneq.store.base import ScoreBound, Store, StoreValue

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# Delete only if the caller still owns the value
_DELETE_IF_EQUALS = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Reserve only if the message survived; score is now + ttr from "ttr;payload"
_CLAIM = """
local message = redis.call("hget", KEYS[1], ARGV[1])
if not message then
    return nil
end
local ttr = tonumber(string.match(message, "^(%d+);"))
redis.call("zadd", KEYS[2], tonumber(ARGV[2]) + ttr, ARGV[1])
local attempt = redis.call("hincrby", KEYS[3], ARGV[1], 1)
return {message, attempt}
"""


def _await_redis(result: Awaitable[R] | R) -> Awaitable[R]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[R], result)


def _store_call(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Translate redis connectivity errors into StoreUnavailable."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"Redis call {func.__name__} failed: {e}")
            raise StoreUnavailable(str(e)) from e

    return wrapper


def _decode_key(key: bytes | str) -> str:
    return key.decode() if isinstance(key, bytes) else key


class RedisStore(Store):
    """Store adapter backed by a Redis server."""

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisStore:
        """Create an adapter with its own connection pool."""
        client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            decode_responses=False,  # Payloads are bytes
            **kwargs,
        )
        return cls(client)

    @_store_call
    async def set_if_absent(self, key: str, value: StoreValue, ttl: int | None = None) -> bool:
        result = await self.client.set(key, value, nx=True, ex=ttl)
        return bool(result)

    @_store_call
    async def delete_if_equals(self, key: str, value: StoreValue) -> bool:
        result = await _await_redis(self.client.eval(_DELETE_IF_EQUALS, 1, key, value))
        return bool(result)

    @_store_call
    async def get(self, key: str) -> bytes | None:
        return cast(bytes | None, await self.client.get(key))

    @_store_call
    async def incr(self, key: str) -> int:
        return int(await self.client.incr(key))

    @_store_call
    async def keys(self, pattern: str) -> list[str]:
        # SCAN avoids blocking the server on large keyspaces
        return [_decode_key(key) async for key in self.client.scan_iter(match=pattern)]

    @_store_call
    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    @_store_call
    async def hset(self, key: str, field: StoreValue, value: StoreValue) -> None:
        await _await_redis(self.client.hset(key, field, value))

    @_store_call
    async def hget(self, key: str, field: StoreValue) -> bytes | None:
        return cast(bytes | None, await _await_redis(self.client.hget(key, field)))

    @_store_call
    async def hdel(self, key: str, field: StoreValue) -> int:
        return int(await _await_redis(self.client.hdel(key, field)))

    @_store_call
    async def hexists(self, key: str, field: StoreValue) -> bool:
        return bool(await _await_redis(self.client.hexists(key, field)))

    @_store_call
    async def hincrby(self, key: str, field: StoreValue, amount: int = 1) -> int:
        return int(await _await_redis(self.client.hincrby(key, field, amount)))

    @_store_call
    async def hlen(self, key: str) -> int:
        return int(await _await_redis(self.client.hlen(key)))

    @_store_call
    async def zadd(self, key: str, member: StoreValue, score: float) -> None:
        await self.client.zadd(key, {member: score})  # type: ignore[dict-item]

    @_store_call
    async def zrem(self, key: str, member: StoreValue) -> int:
        return int(await self.client.zrem(key, member))

    @_store_call
    async def zrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> list[bytes]:
        return cast(list[bytes], await self.client.zrangebyscore(key, min_score, max_score))

    @_store_call
    async def zremrangebyscore(
        self, key: str, min_score: ScoreBound, max_score: ScoreBound
    ) -> int:
        return int(await self.client.zremrangebyscore(key, min_score, max_score))

    @_store_call
    async def zcard(self, key: str) -> int:
        return int(await self.client.zcard(key))

    @_store_call
    async def lpush(self, key: str, value: StoreValue) -> int:
        return int(await _await_redis(self.client.lpush(key, value)))

    @_store_call
    async def rpush(self, key: str, value: StoreValue) -> int:
        return int(await _await_redis(self.client.rpush(key, value)))

    @_store_call
    async def rpop(self, key: str) -> bytes | None:
        return cast(bytes | None, await _await_redis(self.client.rpop(key)))

    @_store_call
    async def brpop(self, keys: Sequence[str], timeout: float) -> tuple[str, bytes] | None:
        if timeout <= 0:
            # Redis treats 0 as "block forever"
            raise ValueError("brpop timeout must be positive")
        result = await _await_redis(self.client.brpop(list(keys), timeout=timeout))
        if result is None:
            return None
        key, value = result
        return _decode_key(key), value

    @_store_call
    async def lrem(self, key: str, value: StoreValue) -> int:
        return int(await _await_redis(self.client.lrem(key, 0, value)))

    @_store_call
    async def llen(self, key: str) -> int:
        return int(await _await_redis(self.client.llen(key)))

    @_store_call
    async def claim(
        self,
        messages_key: str,
        reserved_key: str,
        attempts_key: str,
        member: StoreValue,
        now: int,
    ) -> tuple[bytes, int] | None:
        result = await _await_redis(
            self.client.eval(_CLAIM, 3, messages_key, reserved_key, attempts_key, member, now)
        )
        if result is None:
            return None
        message, attempt = result
        return message, int(attempt)

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except (RedisConnectionError, RedisTimeoutError):
            return False

    async def close(self) -> None:
        """Close Redis connections."""
        await self.client.aclose()
