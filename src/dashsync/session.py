"""Session - the construction point for one dashboard client."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from dashsync.activity import ActivityPoller
from dashsync.cache import CacheStore
from dashsync.client import ApiClient
from dashsync.config import Settings
from dashsync.fetch import OptimizedFetch
from dashsync.notifications import NotificationPoller
from dashsync.storage import JsonFileStore, MemoryStore, PersistentStore
from dashsync.throttle import RequestThrottle
from dashsync.types import ResponseEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_store(settings: Settings) -> PersistentStore:
    """File store at ``settings.storage_path``, or in-memory when unset."""
    if settings.storage_path:
        return JsonFileStore(settings.storage_path)
    return MemoryStore()


class Session:
    """Owns the shared cache, client and pollers for one signed-in user.

    Usage:
        async with Session() as session:
            await session.client.login(email, password)
            invoices = session.fetch(
                lambda: session.client.request("/invoices"),
                cache_key="/invoices",
            )
            invoices.activate()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: PersistentStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store if store is not None else create_store(self.settings)
        self.cache = CacheStore(
            default_ttl=self.settings.cache_ttl,
            max_items=self.settings.cache_max_items,
        )

        throttle = None
        if self.settings.max_requests_per_second > 0:
            throttle = RequestThrottle(
                max_per_second=self.settings.max_requests_per_second,
                max_per_minute=self.settings.max_requests_per_minute,
            )

        self.client = ApiClient(
            self.settings.api_base_url,
            cache=self.cache,
            store=self.store,
            throttle=throttle,
            timeout=self.settings.request_timeout,
            rate_limit_backoff=self.settings.rate_limit_backoff,
            max_retry_after=self.settings.max_retry_after,
            token_storage_key=self.settings.token_storage_key,
            transport=transport,
        )
        self.notifications = NotificationPoller(
            self.client,
            poll_interval=self.settings.notification_poll_interval,
            min_interval=self.settings.notification_min_interval,
        )
        self.activity = ActivityPoller(
            self.client,
            self.store,
            poll_interval=self.settings.activity_poll_interval,
            storage_key=self.settings.last_seen_storage_key,
        )

    def fetch(
        self,
        fetch_fn: Callable[[], Awaitable[ResponseEnvelope[T]]],
        **kwargs: Any,
    ) -> OptimizedFetch[T]:
        """Create a fetch binding that shares this session's cache."""
        kwargs.setdefault("cache_ttl", self.settings.cache_ttl)
        return OptimizedFetch(fetch_fn, cache=self.cache, **kwargs)

    def start(self) -> None:
        """Start both pollers on the running loop."""
        logger.debug("Starting pollers against %s", self.settings.api_base_url)
        self.notifications.start()
        self.activity.start()

    async def stop(self) -> None:
        await self.notifications.stop()
        await self.activity.stop()

    async def aclose(self) -> None:
        """Stop polling and close the HTTP client."""
        await self.stop()
        await self.client.aclose()

    async def __aenter__(self) -> Session:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()
