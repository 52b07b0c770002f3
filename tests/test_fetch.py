"""Tests for the stale-while-revalidate fetch binding."""

import asyncio

from dashsync import CacheStore, ErrorKind, FetchState, OptimizedFetch, ResponseEnvelope


class ControlledFetch:
    """Fetch function whose calls resolve only when released."""

    def __init__(self) -> None:
        self.calls: list[asyncio.Future[ResponseEnvelope[object]]] = []

    async def __call__(self) -> ResponseEnvelope[object]:
        future: asyncio.Future[ResponseEnvelope[object]] = (
            asyncio.get_running_loop().create_future()
        )
        self.calls.append(future)
        return await future

    def resolve(self, index: int, result: ResponseEnvelope[object]) -> None:
        self.calls[index].set_result(result)


async def settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


class TestStaleWhileRevalidate:
    """Tests for serving cached data before the network answers."""

    async def test_cached_value_is_first_render(self, cache: CacheStore) -> None:
        cache.set("/invoices", ResponseEnvelope.ok(["cached"]))
        fetch = ControlledFetch()
        renders: list[FetchState[object]] = []

        binding = OptimizedFetch(fetch, cache=cache, cache_key="/invoices")
        binding.subscribe(renders.append)
        task = binding.activate()

        assert renders[0] == FetchState(
            data=["cached"], loading=False, error=None, is_stale=True
        )
        assert binding.is_stale
        assert not binding.loading

        await settle()
        fetch.resolve(0, ResponseEnvelope.ok(["fresh"]))
        await task

        assert binding.data == ["fresh"]
        assert not binding.is_stale
        assert binding.error is None
        assert all(not r.is_stale for r in renders[1:])

    async def test_without_cache_starts_loading(self, cache: CacheStore) -> None:
        fetch = ControlledFetch()
        binding = OptimizedFetch(fetch, cache=cache, cache_key="/invoices")

        task = binding.activate()
        assert binding.loading
        assert binding.data is None

        await settle()
        fetch.resolve(0, ResponseEnvelope.ok([1]))
        await task
        assert not binding.loading
        assert binding.data == [1]

    async def test_success_is_cached(self, cache: CacheStore) -> None:
        async def fetch() -> ResponseEnvelope[object]:
            return ResponseEnvelope.ok({"total": 3})

        binding = OptimizedFetch(
            fetch, cache=cache, cache_key="/reports", cache_ttl="10s"
        )
        await binding.activate()

        entry = cache.get("/reports")
        assert entry is not None
        assert entry.value.data == {"total": 3}
        assert entry.ttl_ms == 10_000

    async def test_swr_disabled_ignores_cache(self, cache: CacheStore) -> None:
        cache.set("/invoices", ResponseEnvelope.ok(["cached"]))
        fetch = ControlledFetch()
        binding = OptimizedFetch(
            fetch, cache=cache, cache_key="/invoices", stale_while_revalidate=False
        )

        task = binding.activate()
        assert binding.data is None
        assert binding.loading

        await settle()
        fetch.resolve(0, ResponseEnvelope.ok(["fresh"]))
        await task
        assert binding.data == ["fresh"]


class TestErrors:
    """Tests for failures keeping last-known-good data."""

    async def test_failure_keeps_stale_data(self, cache: CacheStore) -> None:
        cache.set("/invoices", ResponseEnvelope.ok(["cached"]))
        errors: list[str] = []

        async def fetch() -> ResponseEnvelope[object]:
            return ResponseEnvelope.fail("Unable to connect", ErrorKind.NETWORK)

        binding = OptimizedFetch(
            fetch, cache=cache, cache_key="/invoices", on_error=errors.append
        )
        await binding.activate()

        assert binding.data == ["cached"]
        assert binding.error == "Unable to connect"
        assert binding.is_stale
        assert not binding.loading
        assert errors == ["Unable to connect"]

    async def test_failure_without_message(self) -> None:
        async def fetch() -> ResponseEnvelope[object]:
            return ResponseEnvelope(success=False)

        binding = OptimizedFetch(fetch)
        await binding.activate()
        assert binding.error == "Failed to fetch data"

    async def test_raising_fetch_fn_sets_error(self) -> None:
        async def fetch() -> ResponseEnvelope[object]:
            raise RuntimeError("boom")

        binding = OptimizedFetch(fetch)
        await binding.activate()
        assert binding.error == "boom"
        assert not binding.loading

    async def test_success_clears_error(self) -> None:
        results = [
            ResponseEnvelope.fail("down", ErrorKind.NETWORK),
            ResponseEnvelope.ok("up"),
        ]

        async def fetch() -> ResponseEnvelope[object]:
            return results.pop(0)

        successes: list[object] = []
        binding = OptimizedFetch(fetch, on_success=successes.append)
        await binding.activate()
        assert binding.error == "down"

        await binding.refetch()
        assert binding.error is None
        assert binding.data == "up"
        assert successes == ["up"]


class TestEnabled:
    """Tests for gating fetches."""

    async def test_disabled_does_not_fetch(self) -> None:
        fetch = ControlledFetch()
        binding = OptimizedFetch(fetch, enabled=False)

        assert binding.activate() is None
        await settle()
        assert fetch.calls == []
        assert binding.loading
        assert binding.data is None

    async def test_enabling_active_binding_fetches(self) -> None:
        async def fetch() -> ResponseEnvelope[object]:
            return ResponseEnvelope.ok("allowed")

        binding = OptimizedFetch(fetch, enabled=False)
        binding.activate()
        task = binding.set_enabled(True)
        assert task is not None
        await task
        assert binding.data == "allowed"


class TestRefetch:
    """Tests for explicit refetch."""

    async def test_refetch_invalidates_and_skips_stale(self, cache: CacheStore) -> None:
        async def first() -> ResponseEnvelope[object]:
            return ResponseEnvelope.ok("v1")

        fetch = ControlledFetch()
        calls = 0

        async def fetch_fn() -> ResponseEnvelope[object]:
            nonlocal calls
            calls += 1
            if calls == 1:
                return await first()
            return await fetch()

        binding = OptimizedFetch(fetch_fn, cache=cache, cache_key="/jobs")
        await binding.activate()
        assert cache.get("/jobs") is not None

        task = binding.refetch()
        assert cache.get("/jobs") is None
        assert binding.data == "v1"
        assert not binding.is_stale

        await settle()
        fetch.resolve(0, ResponseEnvelope.ok("v2"))
        await task
        assert binding.data == "v2"


class TestOrdering:
    """Tests for the generation guard."""

    async def test_slow_early_result_does_not_overwrite_later(self) -> None:
        fetch = ControlledFetch()
        binding = OptimizedFetch(fetch)

        first = binding.activate()
        await settle()
        second = binding.refetch()
        await settle()

        fetch.resolve(1, ResponseEnvelope.ok("newer"))
        await second
        fetch.resolve(0, ResponseEnvelope.ok("older"))
        await first

        assert binding.data == "newer"

    async def test_early_failure_after_later_success_is_ignored(self) -> None:
        fetch = ControlledFetch()
        binding = OptimizedFetch(fetch)

        first = binding.activate()
        await settle()
        second = binding.refetch()
        await settle()

        fetch.resolve(1, ResponseEnvelope.ok("newer"))
        await second
        fetch.resolve(0, ResponseEnvelope.fail("late", ErrorKind.NETWORK))
        await first

        assert binding.error is None

    async def test_deactivated_binding_ignores_results(self) -> None:
        fetch = ControlledFetch()
        renders: list[FetchState[object]] = []
        binding = OptimizedFetch(fetch)
        binding.subscribe(renders.append)

        task = binding.activate()
        await settle()
        binding.deactivate()
        fetch.resolve(0, ResponseEnvelope.ok("late"))
        await task

        assert binding.data is None
        assert renders == []

    async def test_unsubscribe(self) -> None:
        async def fetch() -> ResponseEnvelope[object]:
            return ResponseEnvelope.ok(1)

        renders: list[FetchState[object]] = []
        binding = OptimizedFetch(fetch)
        unsubscribe = binding.subscribe(renders.append)
        unsubscribe()
        await binding.activate()
        assert renders == []
