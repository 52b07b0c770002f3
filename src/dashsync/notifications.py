"""Unread notification counters with a throttled poller."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

from dashsync.client import ApiClient
from dashsync.duration import parse_duration
from dashsync.scheduler import PeriodicTask
from dashsync.types import Clock, Duration, ResponseEnvelope

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    """A counter, with its field name and the server's item type."""

    INVOICES = ("invoices", "invoice")
    CHAT = ("chat", "chat_message")
    TICKETS = ("tickets", "ticket")
    INVOICE_REQUESTS = ("invoice_requests", "invoice_request")
    REQUESTS = ("requests", "request")
    COLLECTIONS = ("collections", "collection")

    def __init__(self, field_name: str, item_type: str) -> None:
        self.field_name = field_name
        self.item_type = item_type


# Dashboard pages that acknowledge a whole category when visited
ROUTE_TYPES: dict[str, NotificationType] = {
    "/dashboard/invoices": NotificationType.INVOICES,
    "/dashboard/chat": NotificationType.CHAT,
    "/dashboard/tickets": NotificationType.TICKETS,
    "/dashboard/invoice-requests": NotificationType.INVOICE_REQUESTS,
    "/dashboard/collections": NotificationType.COLLECTIONS,
    "/dashboard/requests": NotificationType.REQUESTS,
}

# Server payload keys that differ from field names
_PAYLOAD_ALIASES = {"invoice_requests": "invoiceRequests"}


def _to_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


@dataclass(frozen=True, slots=True)
class NotificationCounts:
    """Unseen items per category. Counts are never negative."""

    invoices: int = 0
    chat: int = 0
    tickets: int = 0
    invoice_requests: int = 0
    requests: int = 0
    collections: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> NotificationCounts:
        """Parse the server's counts object; missing or invalid values are 0."""
        values = {}
        for f in fields(cls):
            alias = _PAYLOAD_ALIASES.get(f.name, f.name)
            values[f.name] = _to_count(payload.get(alias, payload.get(f.name)))
        return cls(**values)

    def get(self, kind: NotificationType) -> int:
        return int(getattr(self, kind.field_name))

    def with_count(self, kind: NotificationType, count: int) -> NotificationCounts:
        return replace(self, **{kind.field_name: max(0, count)})

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))


def _now_ms() -> float:
    return time.time() * 1000


class NotificationPoller:
    """Process-wide unread counters kept fresh by polling.

    ``refresh_counts`` is a hard throttle: within ``min_interval`` of the
    last actual fetch it returns without touching the network. The guard is
    checked and stamped under a lock, so simultaneous callers still produce
    at most one request per window.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        poll_interval: Duration = "2m",
        min_interval: Duration = "30s",
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._poll_interval = parse_duration(poll_interval)
        self._min_interval = parse_duration(min_interval)
        self._clock = clock or _now_ms
        self._counts = NotificationCounts()
        self._is_loading = True
        self._last_fetch: float | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[Callable[[NotificationCounts], None]] = []
        self._timer = PeriodicTask(
            self.refresh_counts,
            self._poll_interval,
            name="notification-poller",
        )

    @property
    def counts(self) -> NotificationCounts:
        return self._counts

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def running(self) -> bool:
        return self._timer.running

    def subscribe(
        self, listener: Callable[[NotificationCounts], None]
    ) -> Callable[[], None]:
        """Call listener whenever counts change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_counts(self, counts: NotificationCounts) -> None:
        if counts == self._counts:
            return
        self._counts = counts
        for listener in list(self._listeners):
            listener(counts)

    # -------------------------------------------------------------------------
    # Local adjustments
    # -------------------------------------------------------------------------

    def update_count(self, kind: NotificationType, count: int) -> None:
        self._set_counts(self._counts.with_count(kind, count))

    def increment_count(self, kind: NotificationType) -> None:
        self._set_counts(self._counts.with_count(kind, self._counts.get(kind) + 1))

    def decrement_count(self, kind: NotificationType) -> None:
        self._set_counts(self._counts.with_count(kind, self._counts.get(kind) - 1))

    # -------------------------------------------------------------------------
    # Server round-trips
    # -------------------------------------------------------------------------

    async def clear_count(self, kind: NotificationType) -> ResponseEnvelope[Any]:
        """Zero a counter now, then tell the server everything was viewed.

        The local zero stands even if the server call fails; the next
        successful poll replaces all counts with the server's view.
        """
        self.update_count(kind, 0)
        result = await self._client.mark_all_as_viewed(kind.item_type)
        if result.success:
            logger.debug("Marked all %s notifications as viewed", kind.item_type)
        else:
            logger.warning(
                "Failed to mark %s notifications as viewed: %s",
                kind.item_type,
                result.error,
            )
        return result

    async def mark_viewed(
        self, kind: NotificationType, item_id: str
    ) -> ResponseEnvelope[Any]:
        """Acknowledge a single item."""
        result = await self._client.mark_as_viewed(kind.item_type, item_id)
        if not result.success:
            logger.warning(
                "Failed to mark %s %s as viewed: %s",
                kind.item_type,
                item_id,
                result.error,
            )
        return result

    async def visit(
        self, route: str, item_id: str | None = None
    ) -> ResponseEnvelope[Any] | None:
        """Acknowledge what a dashboard page shows.

        A detail view marks its item viewed; a list page clears its category.
        Routes without a category are ignored.
        """
        kind = ROUTE_TYPES.get(route.rstrip("/") or "/")
        if kind is None:
            return None
        if item_id:
            return await self.mark_viewed(kind, item_id)
        return await self.clear_count(kind)

    async def refresh_counts(self, *, force: bool = False) -> bool:
        """Fetch counts unless the last fetch was within ``min_interval``.

        Returns True if a request was made.
        """
        async with self._lock:
            now = self._clock()
            if (
                not force
                and self._last_fetch is not None
                and now - self._last_fetch < self._min_interval
            ):
                logger.debug("Skipping notification refresh - too frequent")
                return False
            self._last_fetch = now

            self._is_loading = True
            try:
                result = await self._client.get_notification_counts()
            finally:
                self._is_loading = False

        if result.success and isinstance(result.data, Mapping):
            self._set_counts(NotificationCounts.from_payload(result.data))
        elif result.rate_limited:
            logger.debug("Rate limited, keeping previous notification counts")
        else:
            logger.warning(
                "Failed to get notification counts: %s",
                result.error or "unexpected payload",
            )
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Refresh now and then every ``poll_interval``."""
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()
