"""Integration test fixtures using Docker.

Provides a real Redis server: the one at LANEQ_TEST_REDIS_URL when set,
otherwise a throwaway redis:7-alpine container.
"""

from __future__ import annotations

import asyncio
import os
import time
import uuid
from collections.abc import AsyncIterator, Iterator
from urllib.parse import urlparse

import pytest
import pytest_asyncio

from laneq.observability.metrics import MetricsRegistry
from laneq.queue import PriorityQueue
from laneq.store.redis import RedisStore


def _docker_host(client) -> str:
    """Resolve the host to connect to published container ports."""
    base_url = client.api.base_url
    if base_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(base_url).hostname or "localhost"


@pytest.fixture(scope="session")
def redis_url() -> Iterator[str]:
    """URL of the Redis server used by the session."""
    url = os.environ.get("LANEQ_TEST_REDIS_URL")
    if url:
        yield url
        return

    docker = pytest.importorskip("docker")
    try:
        client = docker.from_env()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")

    container = client.containers.run("redis:7-alpine", detach=True, ports={"6379/tcp": None})
    try:
        container.reload()
        port = container.attrs["NetworkSettings"]["Ports"]["6379/tcp"][0]["HostPort"]
        yield f"redis://{_docker_host(client)}:{port}/0"
    finally:
        container.remove(force=True, v=True)
        client.close()


async def _wait_for_redis(store: RedisStore, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while not await store.ping():
        if time.monotonic() >= deadline:
            raise TimeoutError("Redis did not come up")
        await asyncio.sleep(0.5)


@pytest_asyncio.fixture
async def redis_store(redis_url: str) -> AsyncIterator[RedisStore]:
    """Redis adapter, closed after each test."""
    store = RedisStore.from_url(redis_url)
    await _wait_for_redis(store)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def redis_queue(redis_store: RedisStore) -> AsyncIterator[PriorityQueue]:
    """Engine on a channel private to one test."""
    metrics = MetricsRegistry()
    metrics.initialize()
    queue = PriorityQueue(
        redis_store,
        channel=f"it-{uuid.uuid4().hex[:8]}",
        priorities=("high", "low"),
        default_ttr=2,
        metrics=metrics,
    )
    yield queue
    await queue.clear()
