"""End-to-end tests for the cache session lifecycle."""

import io
import json

import pytest
from rich.console import Console

from offplanmap.config import Settings
from offplanmap.reporting import cache_status, print_cache_status
from offplanmap.session import CacheSession
from offplanmap.storage.query_cache import list_query_key, map_query_key
from offplanmap.storage.store import SliceName

from .factories import FakeBackend

MAP_PATH = "/api/properties/batch-100"


def open_session(settings: Settings, backend: FakeBackend, **kwargs) -> CacheSession:
    return CacheSession(settings=settings, transport=backend.transport, **kwargs)


class TestColdStart:
    """Test a session with no durable cache."""

    @pytest.mark.asyncio
    async def test_load_map_fetches_and_renders(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as session:
            stats = await session.load_map()

            assert stats is not None
            assert stats.markers == 12
            assert len(session.store.records(SliceName.MAP)) == 12
            assert len(session.renderer.markers) == 12
            assert session.monitor.api_call_count == 1
            assert backend.pages_requested(MAP_PATH) == [1]

    @pytest.mark.asyncio
    async def test_load_more_extends_rendered_set(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as session:
            await session.load_map()
            stats = await session.load_more_map()

            assert stats.markers == 24
            assert stats.chunks == (12,)
            assert session.map_fetcher.status.page == 2

    @pytest.mark.asyncio
    async def test_close_writes_snapshot(self, settings: Settings, backend: FakeBackend):
        session = open_session(settings, backend)
        await session.open()
        await session.load_map()
        await session.close()

        blob = json.loads(settings.cache_file.read_text())
        (snapshot,) = blob[settings.storage_key]
        assert snapshot["query_key"] == list(map_query_key())
        assert len(snapshot["data"][0]["data"]) == 12
        assert not session.scheduler.running

    @pytest.mark.asyncio
    async def test_close_releases_client_when_persist_fails(
        self, settings: Settings, backend: FakeBackend, monkeypatch
    ):
        session = open_session(settings, backend)
        await session.open()
        closed = []
        real_aclose = session.client.aclose

        async def tracking_aclose():
            closed.append(True)
            await real_aclose()

        def failing_persist(query_cache):
            raise TypeError("Object of type set is not JSON serializable")

        monkeypatch.setattr(session.client, "aclose", tracking_aclose)
        monkeypatch.setattr(session.persister, "persist", failing_persist)

        with pytest.raises(TypeError):
            await session.close()

        assert closed == [True]
        assert not session.is_open
        assert not session.scheduler.running

    @pytest.mark.asyncio
    async def test_timers_run_while_open(self, settings: Settings, backend: FakeBackend):
        session = open_session(settings, backend)
        await session.open()
        names = {task.name for task in session.scheduler.tasks}
        assert {"persist-cache", "optimize-cache", "performance-check",
                "memory-leak-check"} <= names
        assert session.scheduler.running

        await session.close()
        assert not session.scheduler.running

    @pytest.mark.asyncio
    async def test_fallback_backend(self, settings: Settings, backend: FakeBackend):
        backend.down_hosts.add("primary.test")
        async with open_session(settings, backend) as session:
            await session.load_map()

            page = session.query_cache.get(map_query_key()).last_page
            assert page.backend_used == "fallback"
            assert session.monitor.api_call_count == 2

    @pytest.mark.asyncio
    async def test_backend_down_reports_error(self, settings: Settings, backend: FakeBackend):
        backend.down_hosts.update({"primary.test", "fallback.test"})
        async with open_session(settings, backend) as session:
            stats = await session.load_map()

            assert stats is None
            assert session.map_fetcher.status.error is not None
            assert session.store.records(SliceName.MAP) == []


class TestWarmStart:
    """Test restoring the durable snapshot in a new session."""

    @pytest.mark.asyncio
    async def test_restored_cache_needs_no_network(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as first:
            await first.load_map()
            await first.load_more_map()

        second_backend = FakeBackend()
        second = open_session(settings, second_backend)
        restored = await second.open()
        try:
            assert restored == 1
            assert len(second.store.records(SliceName.MAP)) == 24

            stats = await second.load_map()
            assert stats.markers == 24
            assert second_backend.requests == []

            await second.load_more_map()
            assert second_backend.pages_requested(MAP_PATH) == [3]
            assert len(second.store.records(SliceName.MAP)) == 36
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_list_and_map_restored_independently(
        self, settings: Settings, backend: FakeBackend
    ):
        async with open_session(settings, backend, list_filters={"area": "Marina"}) as first:
            await first.load_map()
            await first.load_list()

        second = open_session(settings, FakeBackend(), list_filters={"area": "Marina"})
        assert await second.open() == 2
        try:
            assert list_query_key({"area": "Marina"}) in second.query_cache
            assert len(second.store.records(SliceName.LIST)) == 12
            assert len(second.store.records(SliceName.MAP)) == 12
        finally:
            await second.close()


class TestListAndClear:
    @pytest.mark.asyncio
    async def test_list_filters_do_not_touch_map(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as session:
            await session.load_map()
            await session.load_list({"area": "Downtown"})
            assert await session.load_more_list()

            assert len(session.store.records(SliceName.LIST)) == 24
            assert len(session.store.records(SliceName.MAP)) == 12
            assert session.list_fetcher.filters == {"area": "Downtown"}

    @pytest.mark.asyncio
    async def test_clear_drops_everything(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as session:
            await session.load_map()
            session.persist_now()

            session.clear()

            assert session.store.state.cache_version == 2
            assert session.store.state.total_loaded == 0
            assert len(session.query_cache) == 0
            assert session.renderer.markers == []
            assert not session.persister.describe()["has_cache"]


class TestStatusReport:
    @pytest.mark.asyncio
    async def test_cache_status(self, settings: Settings, backend: FakeBackend):
        async with open_session(settings, backend) as session:
            await session.load_map()
            session.persist_now()

            status = cache_status(session)

            assert status["store"]["map_records"] == 12
            assert status["persisted"]["has_cache"]
            assert status["persisted"]["cache_size"] == 12
            assert status["markers"] == 12
            assert status["issues"] == []

    @pytest.mark.asyncio
    async def test_print_cache_status(self, settings: Settings, backend: FakeBackend):
        out = Console(file=io.StringIO(), width=120)
        async with open_session(settings, backend) as session:
            await session.load_map()
            print_cache_status(session, out)

        text = out.file.getvalue()
        assert "Property cache" in text
        assert "12 / 1000" in text
