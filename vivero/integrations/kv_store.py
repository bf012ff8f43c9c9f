"""Durable key-value persistence backends for zone state.

Both backends implement the same partial-merge contract: ``update`` writes only
the top-level fields it is given and leaves every other field untouched.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from vivero.core.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueBackend(Protocol):
    """Persistence collaborator consumed by :class:`ZoneStateStore`."""

    async def read(self, key: str) -> dict[str, Any] | None: ...

    async def update(self, key: str, partial: Mapping[str, Any]) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryBackend:
    """Process-local backend used for tests and single-node development."""

    def __init__(self, initial: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._data: dict[str, dict[str, Any]] = {
            key: copy.deepcopy(dict(value)) for key, value in (initial or {}).items()
        }

    async def read(self, key: str) -> dict[str, Any] | None:
        record = self._data.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def update(self, key: str, partial: Mapping[str, Any]) -> None:
        self._data.setdefault(key, {}).update(copy.deepcopy(dict(partial)))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisBackend:
    """Store each zone as a Redis hash of JSON-encoded fields.

    ``HSET`` with only the changed fields gives the partial-merge semantics the
    store relies on; a read is a single ``HGETALL``.
    """

    def __init__(self, client: redis.Redis, *, namespace: str) -> None:
        self._client = client
        self._namespace = namespace.rstrip(":")

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def read(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._client.hgetall(self._key(key))
        except (RedisError, OSError) as exc:
            raise StorageError(f"Failed to read zone {key!r}") from exc
        if not raw:
            return None
        record: dict[str, Any] = {}
        for field_name, value in raw.items():
            name = field_name.decode() if isinstance(field_name, bytes) else field_name
            try:
                record[name] = json.loads(value)
            except (TypeError, json.JSONDecodeError) as exc:
                raise StorageError(f"Corrupt field {name!r} for zone {key!r}") from exc
        return record

    async def update(self, key: str, partial: Mapping[str, Any]) -> None:
        if not partial:
            return
        mapping = {name: json.dumps(value, default=str) for name, value in partial.items()}
        try:
            await self._client.hset(self._key(key), mapping=mapping)
        except (RedisError, OSError) as exc:
            raise StorageError(f"Failed to update zone {key!r}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["KeyValueBackend", "MemoryBackend", "RedisBackend"]
