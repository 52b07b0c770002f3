"""Stale-while-revalidate fetch binding for views."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from dashsync.cache import CacheStore
from dashsync.duration import parse_duration
from dashsync.types import Duration, ResponseEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ERROR = "Failed to fetch data"


@dataclass(frozen=True, slots=True)
class FetchState(Generic[T]):
    """What a view renders."""

    data: T | None = None
    loading: bool = True
    error: str | None = None
    is_stale: bool = False


Listener = Callable[[FetchState[Any]], None]


class OptimizedFetch(Generic[T]):
    """Binds a view's lifecycle to a fetch function with optional caching.

    ``activate()`` shows a cached value immediately (marked stale) and
    refreshes it from the network. Failures set ``error`` but keep the last
    good ``data``. Every dispatch gets a generation number and only the
    latest generation may apply its result, so a slow early fetch never
    overwrites a later one.

    Usage:
        binding = OptimizedFetch(
            lambda: client.request("/invoices", use_cache=True),
            cache=client.cache,
            cache_key="/invoices",
        )
        binding.subscribe(render)
        binding.activate()
    """

    def __init__(
        self,
        fetch_fn: Callable[[], Awaitable[ResponseEnvelope[T]]],
        *,
        cache: CacheStore | None = None,
        cache_key: str | None = None,
        cache_ttl: Duration = "30s",
        enabled: bool = True,
        stale_while_revalidate: bool = True,
        on_success: Callable[[T], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._fetch_fn = fetch_fn
        self._cache = cache
        self._cache_key = cache_key
        self._cache_ttl = parse_duration(cache_ttl)
        self._enabled = enabled
        self._swr = stale_while_revalidate
        self._on_success = on_success
        self._on_error = on_error
        self._state: FetchState[T] = FetchState()
        self._generation = 0
        self._active = False
        self._listeners: list[Listener] = []
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> FetchState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def is_stale(self) -> bool:
        return self._state.is_stale

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener on every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def activate(self) -> asyncio.Task[None] | None:
        """Mount: render cached data now, then refresh in the background.

        Must be called from a running event loop. Returns the refresh task,
        or None when fetching is disabled.
        """
        self._active = True
        return self._dispatch(use_cache=True)

    def refetch(self) -> asyncio.Task[None] | None:
        """Drop the cached entry and fetch again."""
        if self._cache is not None and self._cache_key is not None:
            self._cache.invalidate(self._cache_key)
        return self._dispatch(use_cache=False)

    def set_enabled(self, enabled: bool) -> asyncio.Task[None] | None:
        """Change the gate; enabling an active binding starts a fetch."""
        was_enabled, self._enabled = self._enabled, enabled
        if enabled and not was_enabled and self._active:
            return self._dispatch(use_cache=True)
        return None

    def deactivate(self) -> None:
        """Unmount: results arriving later are dropped."""
        self._active = False
        self._generation += 1

    async def wait(self) -> None:
        """Wait for the latest dispatched fetch to settle."""
        if self._task is not None:
            await asyncio.shield(self._task)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _cached_value(self) -> ResponseEnvelope[T] | None:
        if self._cache is None or self._cache_key is None:
            return None
        entry = self._cache.get(self._cache_key)
        if entry is None or not entry.value.success or entry.value.data is None:
            return None
        return entry.value

    def _dispatch(self, *, use_cache: bool) -> asyncio.Task[None] | None:
        if not self._enabled:
            return None

        self._generation += 1
        generation = self._generation

        # Applied before the first suspension so the cached value is the
        # very first thing rendered.
        shown_cached = False
        if use_cache and self._swr:
            cached = self._cached_value()
            if cached is not None:
                self._apply(data=cached.data, is_stale=True, loading=False)
                shown_cached = True

        if not shown_cached and (not self._swr or self._state.data is None):
            if not self._state.loading:
                self._apply(loading=True)

        self._task = asyncio.create_task(self._run(generation))
        return self._task

    async def _run(self, generation: int) -> None:
        try:
            result = await self._fetch_fn()
        except Exception as e:
            logger.exception("Fetch for %s raised", self._cache_key or "view")
            self._fail(generation, str(e) or DEFAULT_ERROR)
            return

        if generation != self._generation:
            logger.debug("Dropping superseded result for %s", self._cache_key)
            return

        if result.success:
            if self._cache is not None and self._cache_key is not None:
                self._cache.set(self._cache_key, result, self._cache_ttl)
            self._apply(data=result.data, is_stale=False, error=None, loading=False)
            if self._on_success is not None:
                self._on_success(result.data)
        else:
            self._fail(generation, result.error or DEFAULT_ERROR)

    def _fail(self, generation: int, message: str) -> None:
        if generation != self._generation:
            return
        self._apply(error=message, loading=False)
        if self._on_error is not None:
            self._on_error(message)
