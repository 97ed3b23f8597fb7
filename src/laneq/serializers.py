"""Payload serializers.

The engine stores opaque bytes; producers and handlers agree on an
encoding. JSON via orjson covers the common case.
"""

from __future__ import annotations

from typing import Any, Protocol

import orjson


class Serializer(Protocol):
    """Encodes job bodies to bytes and back."""

    def dumps(self, obj: Any) -> bytes: ...

    def loads(self, data: bytes) -> Any: ...


class JsonSerializer:
    """JSON serializer backed by orjson."""

    def __init__(self, sort_keys: bool = False):
        self._option = orjson.OPT_SORT_KEYS if sort_keys else 0

    def dumps(self, obj: Any) -> bytes:
        return orjson.dumps(obj, option=self._option)

    def loads(self, data: bytes) -> Any:
        return orjson.loads(data)
