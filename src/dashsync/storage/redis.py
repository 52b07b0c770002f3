"""Redis backed persistent store."""

from __future__ import annotations

from typing import Any

import redis

from dashsync.storage.base import StorageError


class RedisStore:
    """Sync Redis persistent store.

    Keys are namespaced as ``<prefix>:store:<key>`` so several sessions can
    share one database.
    """

    def __init__(
        self,
        client: Any,  # redis.Redis
        *,
        prefix: str = "dashsync",
    ) -> None:
        self._client = client
        self._prefix = prefix

    def _store_key(self, key: str) -> str:
        """Generate full Redis key for a stored item."""
        return f"{self._prefix}:store:{key}"

    def get_item(self, key: str) -> str | None:
        try:
            data = self._client.get(self._store_key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis read failed for {key}: {e}") from e
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return str(data)

    def set_item(self, key: str, value: str) -> None:
        try:
            self._client.set(self._store_key(key), value)
        except redis.RedisError as e:
            raise StorageError(f"Redis write failed for {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._client.delete(self._store_key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis delete failed for {key}: {e}") from e

    def disconnect(self) -> None:
        """Close the Redis connection."""
        self._client.close()
