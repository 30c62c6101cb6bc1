"""Pytest fixtures and test utilities."""

from pathlib import Path

import pytest

from offplanmap.collectors.backend import BackendClient
from offplanmap.config import Settings
from offplanmap.storage.query_cache import QueryCache
from offplanmap.storage.store import PropertyStore

from .factories import FALLBACK_URL, PRIMARY_URL, FakeBackend, FakeClock


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with a temporary cache file and no real delays."""
    return Settings(
        backend_url=PRIMARY_URL,
        fallback_backend_url=FALLBACK_URL,
        cache_file=tmp_path / "cache.json",
        retry_delay=0,
        chunk_delay=0,
        list_page_size=12,
        map_page_size=12,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend, settings: Settings) -> BackendClient:
    return BackendClient(settings=settings, transport=backend.transport)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> PropertyStore:
    return PropertyStore(max_cache_size=1000, clock=clock)


@pytest.fixture
def query_cache(clock: FakeClock) -> QueryCache:
    return QueryCache(clock=clock)
