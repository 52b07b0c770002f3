"""Shared pytest fixtures."""

import pytest

from dashsync import ApiClient, CacheStore, MemoryStore

BASE_URL = "https://api.test.dev/api"


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    """Create a fresh CacheStore on the fake clock for each test."""
    return CacheStore(clock=clock)


@pytest.fixture
def store() -> MemoryStore:
    """Create a fresh in-memory persistent store for each test."""
    return MemoryStore()


@pytest.fixture
async def client(cache: CacheStore, store: MemoryStore):
    """Create an ApiClient against the test base URL."""
    api = ApiClient(BASE_URL, cache=cache, store=store)
    yield api
    await api.aclose()
