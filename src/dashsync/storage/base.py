"""Persistent store protocol and errors."""

import json
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a persistent store cannot be read or written."""


@runtime_checkable
class PersistentStore(Protocol):
    """Key/value persistence that survives restarts, like browser localStorage.

    Values are strings; callers serialize structured data as JSON.
    Implementations raise StorageError on backend failures.
    """

    def get_item(self, key: str) -> str | None:
        """Get the stored string for key."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store a string under key."""
        ...

    def remove_item(self, key: str) -> None:
        """Remove key if present."""
        ...


def read_json(store: PersistentStore, key: str) -> Any:
    """Read and decode a JSON value, or None if absent, corrupt or unreadable."""
    try:
        raw = store.get_item(key)
    except (StorageError, OSError):
        logger.warning("Could not read %s from persistent store", key, exc_info=True)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding corrupt persisted value for %s", key)
        return None


def write_json(store: PersistentStore, key: str, value: Any) -> bool:
    """Encode and store a JSON value. Returns False if the store failed."""
    try:
        store.set_item(key, json.dumps(value))
    except (StorageError, OSError):
        logger.warning("Could not write %s to persistent store", key, exc_info=True)
        return False
    return True
