"""Shared plumbing for CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import typer

from laneq.config import settings
from laneq.queue import PriorityQueue
from laneq.store import RedisStore, Store

T = TypeVar("T")


@dataclass
class CliState:
    """Options given to the top-level command."""

    channel: str = settings.channel
    redis_url: str = settings.redis_url
    priorities: tuple[str, ...] = settings.priority_lanes


def open_store(url: str) -> Store:
    """Connect to the store behind ``url``."""
    return RedisStore.from_url(url)


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.find_object(CliState)
    return state if state is not None else CliState()


def run_with_queue(ctx: typer.Context, action: Callable[[PriorityQueue], Awaitable[T]]) -> T:
    """Run ``action`` against a queue built from the CLI options."""
    state = get_state(ctx)

    async def _run() -> T:
        store = open_store(state.redis_url)
        try:
            queue = PriorityQueue(
                store,
                channel=state.channel,
                priorities=state.priorities,
                default_ttr=settings.default_ttr,
                moving_lock_ttl=settings.moving_lock_ttl,
                lock_wait_initial=settings.lock_wait_initial,
                lock_wait_max=settings.lock_wait_max,
                lock_wait_multiplier=settings.lock_wait_multiplier,
            )
            return await action(queue)
        finally:
            await store.close()

    return asyncio.run(_run())
