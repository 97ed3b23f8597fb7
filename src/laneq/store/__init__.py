"""Store adapters for laneq.

The engine only talks to the Store interface:
- RedisStore for shared deployments (redis-py async client)
- MemoryStore for tests and single-process development
"""

from laneq.store.base import ScoreBound, Store, StoreValue
from laneq.store.memory import MemoryStore
from laneq.store.redis import RedisStore

__all__ = [
    "Store",
    "StoreValue",
    "ScoreBound",
    "MemoryStore",
    "RedisStore",
]
