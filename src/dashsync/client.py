"""Async API client with request deduplication."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from dashsync.cache import CacheStore
from dashsync.duration import to_seconds
from dashsync.storage.base import PersistentStore, StorageError
from dashsync.throttle import RequestThrottle
from dashsync.types import Duration, ErrorKind, ResponseEnvelope

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api"

Envelope = ResponseEnvelope[Any]


def request_key(method: str, endpoint: str, body: Any = None) -> str:
    """Signature of a logically identical request.

    Method and endpoint (with query string) identify a request; a body, when
    present, adds a short digest so different payloads stay distinct.
    """
    key = f"{method.upper()}:{endpoint}"
    if body is not None:
        digest = hashlib.sha256(
            json.dumps(body, sort_keys=True, default=str).encode()
        ).hexdigest()[:16]
        key = f"{key}:{digest}"
    return key


def resource_prefix(endpoint: str) -> str:
    """First path segment of an endpoint, e.g. ``/invoices/42?x=1`` -> ``/invoices``."""
    path = endpoint.split("?", 1)[0]
    segments = [s for s in path.split("/") if s]
    return f"/{segments[0]}" if segments else "/"


class ApiClient:
    """Single path for every call to the dashboard API.

    Every call resolves to a ``ResponseEnvelope``; transport failures, rate
    limits and error statuses are reported as failed envelopes, never raised.
    Concurrent identical requests share one network call.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        cache: CacheStore | None = None,
        store: PersistentStore | None = None,
        throttle: RequestThrottle | None = None,
        timeout: float = 30.0,
        rate_limit_backoff: Duration = "1s",
        max_retry_after: Duration = "1m",
        token_storage_key: str = "authToken",
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )
        self._cache = cache if cache is not None else CacheStore()
        self._store = store
        self._throttle = throttle
        self._backoff = to_seconds(rate_limit_backoff)
        self._max_retry_after = to_seconds(max_retry_after)
        self._token_key = token_storage_key
        self._sleep = sleep or asyncio.sleep
        self._in_flight: dict[str, asyncio.Task[Envelope]] = {}
        self._token: str | None = self._load_token()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def pending_count(self) -> int:
        """Number of distinct requests currently in flight."""
        return len(self._in_flight)

    # -------------------------------------------------------------------------
    # Token management
    # -------------------------------------------------------------------------

    def _load_token(self) -> str | None:
        if self._store is None:
            return None
        try:
            return self._store.get_item(self._token_key)
        except (StorageError, OSError):
            logger.warning("Could not restore auth token", exc_info=True)
            return None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token
        if self._store is None:
            return
        try:
            self._store.set_item(self._token_key, token)
        except (StorageError, OSError):
            logger.warning("Could not persist auth token", exc_info=True)

    def clear_token(self) -> None:
        self._token = None
        if self._store is None:
            return
        try:
            self._store.remove_item(self._token_key)
        except (StorageError, OSError):
            logger.warning("Could not remove persisted auth token", exc_info=True)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        use_cache: bool = False,
        cache_ttl: Duration | None = None,
    ) -> Envelope:
        """Send a request and classify the outcome.

        Args:
            endpoint: Path relative to the base URL, including any query string
            method: HTTP method
            body: JSON-serializable request body
            use_cache: Serve a fresh cached GET result and store new ones
            cache_ttl: TTL for the stored result (default: cache default)

        Returns:
            Envelope with ``data`` on success or ``error`` and ``kind`` on failure
        """
        method = method.upper()
        cacheable = use_cache and method == "GET"
        if cacheable:
            entry = self._cache.get(endpoint)
            if entry is not None:
                logger.debug("Cache hit for %s", endpoint)
                return entry.value

        key = request_key(method, endpoint, body)
        result = await self._coalesce(
            key, lambda: self._execute(method, endpoint, body)
        )

        if result.success:
            if cacheable:
                self._cache.set(endpoint, result, cache_ttl)
            elif method != "GET":
                self._invalidate_resource(endpoint)
        return result

    def _invalidate_resource(self, endpoint: str) -> None:
        prefix = resource_prefix(endpoint)
        if prefix == "/":
            return
        self._cache.invalidate(prefix)
        self._cache.invalidate_by_prefix(f"{prefix}/")
        self._cache.invalidate_by_prefix(f"{prefix}?")

    async def _coalesce(
        self, key: str, fetch: Callable[[], Awaitable[Envelope]]
    ) -> Envelope:
        """Coalesce concurrent requests for same key.

        The call runs in its own task and every caller awaits it shielded,
        so cancelling any one caller never cancels the shared call.
        """
        task = self._in_flight.get(key)
        if task is not None and not task.done():
            logger.debug("Joining in-flight request %s", key)
        else:
            task = asyncio.create_task(fetch(), name=f"request {key}")
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Envelope]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve so an unawaited failure is not reported as unhandled
        if not task.cancelled():
            task.exception()

    async def _execute(self, method: str, endpoint: str, body: Any) -> Envelope:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        if self._throttle is not None:
            await self._throttle.acquire()

        logger.debug("%s %s%s", method, self._base_url, endpoint)
        try:
            response = await self._client.request(
                method, endpoint, json=body, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %r", method, endpoint, e)
            return ResponseEnvelope.fail(
                f"Unable to connect to server at {self._base_url}",
                ErrorKind.NETWORK,
            )

        if response.status_code == 429:
            delay = self._retry_after(response)
            logger.warning(
                "Rate limited on %s %s, backing off %.1fs", method, endpoint, delay
            )
            await self._sleep(delay)
            return ResponseEnvelope.fail(
                f"Rate limited. Please try again in {math.ceil(delay)} seconds.",
                ErrorKind.RATE_LIMITED,
            )

        if not response.is_success:
            return ResponseEnvelope.fail(
                self._error_message(response), ErrorKind.APPLICATION
            )

        if not response.content:
            return ResponseEnvelope.ok(None)
        try:
            data = response.json()
        except ValueError:
            logger.warning("Malformed JSON from %s %s", method, endpoint)
            return ResponseEnvelope.fail(
                "Malformed response from server", ErrorKind.MALFORMED
            )

        if endpoint.startswith("/auth/"):
            return ResponseEnvelope.ok(data)
        if (
            isinstance(data, dict)
            and isinstance(data.get("success"), bool)
            and ("data" in data or "error" in data)
        ):
            return ResponseEnvelope.from_body(data)
        return ResponseEnvelope.ok(data)

    def _retry_after(self, response: httpx.Response) -> float:
        """Server-requested wait, capped at ``max_retry_after``."""
        value = response.headers.get("Retry-After")
        if value is not None:
            try:
                return min(max(0.0, float(value)), self._max_retry_after)
            except ValueError:
                pass
        return self._backoff

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return "Request failed"
        if isinstance(data, dict):
            message = data.get("error") or data.get("message")
            if isinstance(message, str) and message:
                return message
        return "Request failed"

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Envelope:
        """Log in and hold the returned token."""
        result = await self.request(
            "/auth/login",
            method="POST",
            body={"email": email, "password": password},
        )
        if result.success and isinstance(result.data, dict):
            token = result.data.get("token")
            if isinstance(token, str) and token:
                self.set_token(token)
        return result

    async def get_notification_counts(self) -> Envelope:
        return await self.request("/notifications/counts")

    async def mark_as_viewed(self, item_type: str, item_id: str) -> Envelope:
        return await self.request(
            "/notifications/mark-viewed",
            method="POST",
            body={"type": item_type, "itemId": item_id},
        )

    async def mark_all_as_viewed(self, item_type: str) -> Envelope:
        return await self.request(
            "/notifications/mark-all-viewed",
            method="POST",
            body={"type": item_type},
        )

    async def get_activity_last_updated(self) -> Envelope:
        return await self.request("/activity/last-updated")

    async def health_check(self) -> Envelope:
        return await self.request("/health")

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()
