"""Per-resource "has new activity" flags."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone

from dashsync.client import ApiClient
from dashsync.scheduler import PeriodicTask
from dashsync.storage.base import PersistentStore, read_json, write_json
from dashsync.types import Duration

logger = logging.getLogger(__name__)

ActivityMap = dict[str, str]
HasNewMap = dict[str, bool]

LAST_SEEN_KEY = "activity:lastSeen"

# Keys match the server's last-updated payload
TRACKED_KEYS: tuple[str, ...] = (
    "requests",
    "invoice_requests",
    "invoices",
    "delivery_assignments",
    "tickets",
    "collections",
    "jobs",
    "cash_flow",
    "reports",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_has_new(
    last_updated: Mapping[str, str],
    last_seen: Mapping[str, str],
    keys: Iterable[str],
) -> HasNewMap:
    """True for keys updated on the server after they were last seen."""
    result: HasNewMap = {}
    for key in keys:
        updated = parse_timestamp(last_updated.get(key))
        if updated is None:
            result[key] = False
            continue
        seen = parse_timestamp(last_seen.get(key))
        result[key] = seen is None or updated > seen
    return result


def _clean_map(value: object) -> ActivityMap:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): v for k, v in value.items() if isinstance(v, str)}


class ActivityPoller:
    """Compares server last-updated times with persisted last-seen times.

    ``last_seen`` is restored from the store at construction and written
    back on every ``mark_seen``. Store failures never propagate.
    """

    def __init__(
        self,
        client: ApiClient,
        store: PersistentStore,
        *,
        tracked_keys: Iterable[str] = TRACKED_KEYS,
        poll_interval: Duration = "30s",
        storage_key: str = LAST_SEEN_KEY,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._tracked_keys = tuple(tracked_keys)
        self._storage_key = storage_key
        self._now = now or _utcnow
        self._last_updated: ActivityMap = {}
        self._last_seen: ActivityMap = _clean_map(read_json(store, storage_key))
        self._listeners: list[Callable[[HasNewMap], None]] = []
        self._timer = PeriodicTask(self.refresh, poll_interval, name="activity-poller")

    @property
    def tracked_keys(self) -> tuple[str, ...]:
        return self._tracked_keys

    @property
    def last_updated(self) -> ActivityMap:
        return dict(self._last_updated)

    @property
    def last_seen(self) -> ActivityMap:
        return dict(self._last_seen)

    @property
    def has_new(self) -> HasNewMap:
        return compute_has_new(self._last_updated, self._last_seen, self._tracked_keys)

    @property
    def running(self) -> bool:
        return self._timer.running

    def subscribe(self, listener: Callable[[HasNewMap], None]) -> Callable[[], None]:
        """Call listener whenever the flags may have changed."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        flags = self.has_new
        for listener in list(self._listeners):
            listener(flags)

    def mark_seen(self, key: str) -> None:
        """Record that the user has looked at ``key`` now."""
        self._last_seen = {**self._last_seen, key: self._now().isoformat()}
        write_json(self._store, self._storage_key, self._last_seen)
        self._notify()

    async def refresh(self) -> bool:
        """Fetch last-updated times. Returns True if they were replaced."""
        result = await self._client.get_activity_last_updated()
        if not result.success:
            # Optional endpoint; older servers do not have it
            logger.debug("Activity last-updated unavailable: %s", result.error)
            return False
        if not isinstance(result.data, Mapping):
            logger.debug("Ignoring non-object activity payload")
            return False
        self._last_updated = _clean_map(result.data)
        self._notify()
        return True

    def start(self) -> None:
        """Refresh now and then every ``poll_interval``."""
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()
