"""Persistent stores for tokens and last-seen markers."""

from contextlib import suppress

from dashsync.storage.base import (
    PersistentStore,
    StorageError,
    read_json,
    write_json,
)
from dashsync.storage.file import JsonFileStore
from dashsync.storage.memory import MemoryStore

# Optional stores - only available when dependencies are installed
with suppress(ImportError):
    from dashsync.storage.redis import RedisStore

__all__ = [
    "JsonFileStore",
    "MemoryStore",
    "PersistentStore",
    "RedisStore",
    "StorageError",
    "read_json",
    "write_json",
]
