"""Lifecycle wiring for the property cache pipeline.

A ``CacheSession`` is what a hosting page opens and closes. It builds one
instance of every component and passes them to each other explicitly:

    fetchers -> store -> (subscription) -> renderer
    persister <-> query cache
    monitor -> store.optimize()

Opening restores the durable snapshot before any fetch is issued and starts
the timers; closing stops the timers, writes a final snapshot and releases
the HTTP client.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from .collectors.backend import BackendClient
from .collectors.paginator import PaginatedFetcher
from .config import Settings
from .mapping.clustering import ClusterRenderer, RenderStats
from .monitoring.monitor import PerformanceMonitor
from .scheduling import Scheduler
from .storage.persistence import CachePersister
from .storage.query_cache import QueryCache
from .storage.store import CacheState, PropertyStore, SliceName

logger = logging.getLogger(__name__)


class CacheSession:
    """Owns the store, fetchers, renderer, persister, monitor and timers.

    Example:
        async with CacheSession() as session:
            await session.load_map()
            await session.load_more_map()
            clusters = session.renderer.clusters(zoom=11)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        list_filters: Optional[dict[str, Any]] = None,
        store: Optional[PropertyStore] = None,
        query_cache: Optional[QueryCache] = None,
        persister: Optional[CachePersister] = None,
        client: Optional[BackendClient] = None,
        monitor: Optional[PerformanceMonitor] = None,
        renderer: Optional[ClusterRenderer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Build the pipeline, reusing any component passed in.

        Args:
            settings: Settings shared by every component
            list_filters: Initial filters of the list slice
            store: Record store (default: new PropertyStore)
            query_cache: Page-sequence cache (default: new QueryCache)
            persister: Durable snapshot handler (default: settings.cache_file)
            client: Backend client (default: new BackendClient)
            monitor: Performance monitor (default: new PerformanceMonitor)
            renderer: Map renderer (default: new ClusterRenderer)
            transport: httpx transport for the default client
        """
        self.settings = settings or Settings()
        s = self.settings
        self.store = store or PropertyStore(max_cache_size=s.max_cache_size)
        self.query_cache = query_cache or QueryCache(
            stale_time=s.stale_time_seconds, gc_time=s.gc_time_seconds
        )
        self.persister = persister or CachePersister(
            s.cache_file, storage_key=s.storage_key, stale_time=s.stale_time_seconds
        )
        self.monitor = monitor or PerformanceMonitor(self.store, settings=s)
        self.client = client or BackendClient(
            settings=s, transport=transport, on_request=self.monitor.track_api_call
        )
        self.renderer = renderer or ClusterRenderer(settings=s)

        self.map_fetcher = PaginatedFetcher.for_map(
            self.store, self.query_cache, self.client, settings=s
        )
        self.list_fetcher = PaginatedFetcher.for_list(
            self.store, self.query_cache, self.client, filters=list_filters, settings=s
        )

        self.scheduler = Scheduler()
        self.scheduler.every("persist-cache", s.persist_interval, self.persist_now)
        self.scheduler.every("optimize-cache", s.optimize_interval, self.store.optimize)
        self.scheduler.every("performance-check", s.performance_interval, self.monitor.run_check)
        self.scheduler.every("memory-leak-check", s.leak_check_interval, self.monitor.check_memory_leak)
        self.scheduler.every("query-cache-gc", s.persist_interval, self.query_cache.collect_garbage)

        self._unsubscribe = None
        self._rendered_records: tuple = ()
        self._render_task: Optional[asyncio.Task] = None
        self.is_open = False

    async def __aenter__(self) -> "CacheSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> int:
        """Restore the durable cache, hydrate the slices and start timers.

        Returns:
            Number of queries restored from durable storage
        """
        if self.is_open:
            return 0
        restored = self.persister.restore(self.query_cache)
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        self.map_fetcher.hydrate()
        self.list_fetcher.hydrate()
        self.scheduler.start()
        self.is_open = True
        logger.info(f"Cache session opened ({restored} queries restored)")
        return restored

    async def close(self) -> None:
        """Stop timers, take the final snapshot and release resources."""
        if not self.is_open:
            return
        await self.scheduler.stop()
        if self._render_task and not self._render_task.done():
            self._render_task.cancel()
            try:
                await self._render_task
            except asyncio.CancelledError:
                pass
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        try:
            self.persist_now()
            logger.info(f"Final performance metrics: {self.monitor.get_metrics().as_dict()}")
        finally:
            await self.client.aclose()
            self.is_open = False

    def persist_now(self) -> int:
        return self.persister.persist(self.query_cache)

    # -- rendering --------------------------------------------------------

    def _on_store_change(self, state: CacheState) -> None:
        records = state.map.records
        if records is self._rendered_records:
            return
        self._rendered_records = records
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._render_task = loop.create_task(self.render_map())

    async def render_map(self) -> RenderStats:
        """Render the current map slice and feed the timing to the monitor."""
        stats = await self.renderer.render(self.store.records(SliceName.MAP))
        if stats.completed:
            self.monitor.record_render(stats.elapsed)
        return stats

    async def wait_for_render(self) -> Optional[RenderStats]:
        """Wait for the render triggered by the latest map change."""
        task = self._render_task
        while task is not None:
            stats = await task
            if task is self._render_task:
                return stats
            task = self._render_task
        return None

    # -- host-facing operations -------------------------------------------

    async def load_map(self) -> Optional[RenderStats]:
        """Show the map: serve from cache or fetch page 1, then render."""
        await self.map_fetcher.ensure_loaded()
        return await self.wait_for_render()

    async def load_more_map(self) -> Optional[RenderStats]:
        await self.map_fetcher.load_next_page()
        return await self.wait_for_render()

    async def refresh_map(self) -> Optional[RenderStats]:
        await self.map_fetcher.refresh()
        return await self.wait_for_render()

    async def load_list(self, filters: Optional[dict[str, Any]] = None) -> None:
        if filters is not None and filters != self.list_fetcher.filters:
            await self.list_fetcher.set_filters(filters)
        else:
            await self.list_fetcher.ensure_loaded()

    async def load_more_list(self) -> bool:
        return await self.list_fetcher.load_next_page()

    def clear(self) -> None:
        """Drop every cached record, query and persisted snapshot."""
        self.store.clear_all()
        self.query_cache.clear()
        self.persister.clear()
        self.renderer.clear()
