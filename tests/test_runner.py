"""Tests for the CLI runner."""

import pytest

from offplanmap.config import Settings
from offplanmap.runner import run

from .factories import FakeBackend

MAP_PATH = "/api/properties/batch-100"


class TestRun:
    @pytest.mark.asyncio
    async def test_loads_requested_pages(self, settings: Settings, backend: FakeBackend, capsys):
        code = await run(pages=2, settings=settings, transport=backend.transport)

        assert code == 0
        assert backend.pages_requested(MAP_PATH) == [1, 2]
        assert "Property cache" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_stops_at_last_page(self, settings: Settings, backend: FakeBackend):
        await run(pages=10, settings=settings, transport=backend.transport)
        assert backend.pages_requested(MAP_PATH) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_unreachable_backend_exits_nonzero(
        self, settings: Settings, backend: FakeBackend, capsys
    ):
        backend.down_hosts.update({"primary.test", "fallback.test"})
        code = await run(settings=settings, transport=backend.transport)

        assert code == 1
        assert "Map data unavailable" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_clear_forces_refetch(self, settings: Settings, backend: FakeBackend):
        await run(settings=settings, transport=backend.transport)
        await run(settings=settings, transport=backend.transport)
        assert backend.pages_requested(MAP_PATH) == [1]

        await run(clear=True, settings=settings, transport=backend.transport)
        assert backend.pages_requested(MAP_PATH) == [1, 1]
