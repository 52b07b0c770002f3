"""In-memory response cache with TTL and prefix invalidation."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any

from dashsync.duration import parse_duration
from dashsync.types import CacheEntry, Clock, Duration, ResponseEnvelope

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


class CacheStore:
    """Request-signature keyed store of response envelopes.

    Expiry is lazy: an expired entry is dropped the next time it is read.
    ``cleanup()`` sweeps everything expired in one pass.
    """

    def __init__(
        self,
        *,
        default_ttl: Duration = "30s",
        max_items: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._default_ttl = parse_duration(default_ttl)
        self._max_items = max_items
        self._clock = clock or _now_ms

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    def set_default_ttl(self, ttl: Duration) -> None:
        self._default_ttl = parse_duration(ttl)

    def get(self, key: str) -> CacheEntry[Any] | None:
        """Get an entry by key, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)  # LRU touch
        return entry

    def set(
        self,
        key: str,
        value: ResponseEnvelope[Any],
        ttl: Duration | None = None,
    ) -> CacheEntry[Any]:
        """Store an envelope, replacing any previous entry for the key."""
        ttl_ms = parse_duration(ttl) if ttl is not None else self._default_ttl
        entry: CacheEntry[Any] = CacheEntry(
            key=key,
            value=value,
            stored_at=int(self._clock()),
            ttl_ms=ttl_ms,
        )
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self._max_items and len(self._entries) > self._max_items:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s from response cache", evicted)
        return entry

    def invalidate(self, key: str) -> None:
        """Remove the entry for exactly this key."""
        self._entries.pop(key, None)

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix.

        Returns the number of entries removed.
        """
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        if keys:
            logger.debug("Invalidated %d cached entries under %s", len(keys), prefix)
        return len(keys)

    def cleanup(self) -> int:
        """Drop all expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
