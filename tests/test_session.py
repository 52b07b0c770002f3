"""Tests for Session wiring."""

import json

import httpx

from dashsync import JsonFileStore, MemoryStore, Session, Settings
from dashsync.session import create_store

BASE_URL = "https://api.test.dev/api"


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/notifications/counts"):
        return httpx.Response(200, json={"invoices": 2})
    if request.url.path.endswith("/activity/last-updated"):
        return httpx.Response(200, json={"invoices": "2026-03-01T10:00:00Z"})
    if request.url.path.endswith("/invoices"):
        return httpx.Response(200, json=[{"id": "inv-1"}])
    return httpx.Response(404, json={"error": "Not found"})


class TestSession:
    """Tests for the construction point."""

    async def test_components_share_cache_and_store(self) -> None:
        store = MemoryStore()
        session = Session(Settings(api_base_url=BASE_URL), store=store)

        assert session.client.cache is session.cache
        assert session.activity.last_seen == {}
        assert session.client.base_url == BASE_URL
        await session.aclose()

    async def test_fetch_binding_uses_session_cache(self) -> None:
        session = Session(
            Settings(api_base_url=BASE_URL),
            transport=httpx.MockTransport(handler),
        )
        binding = session.fetch(
            lambda: session.client.request("/invoices"), cache_key="/invoices"
        )
        await binding.activate()
        await session.aclose()

        assert binding.data == [{"id": "inv-1"}]
        assert session.cache.get("/invoices") is not None

    async def test_context_manager_starts_and_stops_pollers(self) -> None:
        async with Session(
            Settings(api_base_url=BASE_URL),
            transport=httpx.MockTransport(handler),
        ) as session:
            assert session.notifications.running
            assert session.activity.running
            await session.notifications.refresh_counts()
            await session.activity.refresh()
            assert session.notifications.counts.invoices == 2
            assert session.activity.has_new["invoices"] is True

        assert not session.notifications.running
        assert not session.activity.running

    async def test_throttle_enabled_from_settings(self) -> None:
        session = Session(Settings(api_base_url=BASE_URL, max_requests_per_second=5))
        assert session.client._throttle is not None
        await session.aclose()

    def test_create_store(self, tmp_path) -> None:
        assert isinstance(create_store(Settings()), MemoryStore)
        path = tmp_path / "state.json"
        store = create_store(Settings(storage_path=str(path)))
        assert isinstance(store, JsonFileStore)

    async def test_token_persists_across_sessions(self, tmp_path) -> None:
        settings = Settings(
            api_base_url=BASE_URL, storage_path=str(tmp_path / "s.json")
        )
        first = Session(settings)
        first.client.set_token("abc")
        first.activity.mark_seen("jobs")
        await first.aclose()

        second = Session(settings)
        assert second.client.get_token() == "abc"
        assert "jobs" in second.activity.last_seen
        await second.aclose()

        raw = json.loads((tmp_path / "s.json").read_text())
        assert raw["authToken"] == "abc"
