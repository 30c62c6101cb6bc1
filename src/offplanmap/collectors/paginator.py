"""Cursor-paginated fetch coordinator.

A ``PaginatedFetcher`` drives one store slice. It walks the backend's page
cursor, keeps the fetched page sequence in the query cache under a key
derived from its filters, and merges each new page into the store. Requests
for one fetcher are serialized, so page N is merged only after page N-1.

Freshness:
    A page sequence younger than the stale time is served from the cache
    without any network call. A failed page never discards records that
    are already in the store; only the error is surfaced.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import Settings
from ..models.property import PageResponse, PropertyRecord
from ..storage.query_cache import QueryCache, QueryKey, list_query_key, map_query_key
from ..storage.store import PropertyStore, SliceName
from .backend import BackendClient
from .base import BackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchStatus:
    """Snapshot of a fetcher's progress."""

    loading: bool
    error: Optional[str]
    has_more: bool
    page: int
    total_pages: int
    record_count: int
    last_fetch: Optional[float]


class PaginatedFetcher:
    """Fetches pages for one slice and merges them into the store.

    Example:
        fetcher = PaginatedFetcher.for_list(store, query_cache, client,
                                            filters={"area": "Dubai Marina"})
        await fetcher.ensure_loaded()
        while fetcher.status.has_more:
            await fetcher.load_next_page()
    """

    def __init__(
        self,
        slice_name: SliceName,
        endpoint: str,
        page_size: int,
        store: PropertyStore,
        query_cache: QueryCache,
        client: BackendClient,
        filters: Optional[dict[str, Any]] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        """Initialize the fetcher.

        Args:
            slice_name: Store slice this fetcher owns
            endpoint: Backend path to page through
            page_size: Records requested per page
            store: Shared record store
            query_cache: Shared page-sequence cache
            client: Backend client
            filters: Extra query parameters forwarded with every request
            max_retries: Re-attempts per page after the first failure
            retry_delay: Base delay in seconds, doubled after each attempt
        """
        self.slice_name = SliceName(slice_name)
        self.endpoint = endpoint
        self.page_size = page_size
        self.store = store
        self.query_cache = query_cache
        self.client = client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._filters: dict[str, Any] = dict(filters or {})
        self._lock = asyncio.Lock()
        self._generation = 0

    @classmethod
    def for_map(
        cls,
        store: PropertyStore,
        query_cache: QueryCache,
        client: BackendClient,
        settings: Optional[Settings] = None,
    ) -> "PaginatedFetcher":
        """Fetcher for the map slice (large batches, no filters)."""
        settings = settings or Settings()
        return cls(
            SliceName.MAP,
            settings.map_endpoint,
            settings.map_page_size,
            store,
            query_cache,
            client,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )

    @classmethod
    def for_list(
        cls,
        store: PropertyStore,
        query_cache: QueryCache,
        client: BackendClient,
        filters: Optional[dict[str, Any]] = None,
        settings: Optional[Settings] = None,
    ) -> "PaginatedFetcher":
        """Fetcher for the paged list slice."""
        settings = settings or Settings()
        return cls(
            SliceName.LIST,
            settings.list_endpoint,
            settings.list_page_size,
            store,
            query_cache,
            client,
            filters=filters,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )

    @property
    def filters(self) -> dict[str, Any]:
        return dict(self._filters)

    @property
    def query_key(self) -> QueryKey:
        if self.slice_name is SliceName.MAP and not self._filters:
            return map_query_key()
        if self.slice_name is SliceName.MAP:
            return (*map_query_key(), dict(sorted(self._filters.items())))
        return list_query_key(self._filters)

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def records(self) -> list[PropertyRecord]:
        return self.store.records(self.slice_name)

    @property
    def status(self) -> FetchStatus:
        current = self.store.state.slice(self.slice_name)
        entry = self.query_cache.get(self.query_key)
        last_page = entry.last_page if entry else None
        return FetchStatus(
            loading=current.loading,
            error=current.error,
            has_more=current.has_more,
            page=last_page.pagination.page if last_page else current.current_page,
            total_pages=last_page.pagination.total_pages if last_page else 0,
            record_count=len(current.records),
            last_fetch=current.last_fetch,
        )

    def hydrate(self) -> bool:
        """Fill the slice from a fresh cached page sequence, without network.

        Returns:
            True if the slice was served from the cache
        """
        key = self.query_key
        if not self.query_cache.is_fresh(key):
            return False
        entry = self.query_cache.get(key)
        if entry is None or entry.last_page is None:
            return False

        self.store.set_slice(
            self.slice_name, entry.records, fetched_at=entry.data_updated_at
        )
        self.store.set_pagination(
            self.slice_name, entry.last_page.pagination.page, entry.has_more
        )
        self.store.set_error(self.slice_name, None)
        logger.debug(
            f"Served {self.slice_name.value} slice from cache "
            f"({len(entry.records)} records)"
        )
        return True

    async def ensure_loaded(self) -> bool:
        """Make sure the first page is available.

        Returns:
            True if a network request was made
        """
        if self.hydrate():
            return False
        return await self._fetch(1)

    async def load_next_page(self) -> bool:
        """Fetch the page after the last one merged.

        No-op while a request is in flight or when the backend reported no
        further pages.

        Returns:
            True if a network request was made
        """
        if self.in_flight:
            logger.debug(f"{self.slice_name.value}: fetch already in flight")
            return False

        entry = self.query_cache.get(self.query_key)
        if entry is not None and entry.last_page is not None:
            if not entry.has_more:
                return False
            return await self._fetch(entry.last_page.pagination.page + 1)

        # Cached sequence evicted while the slice still shows its pages
        current = self.store.state.slice(self.slice_name)
        if current.current_page > 0:
            if not current.has_more:
                return False
            return await self._fetch(current.current_page + 1)
        return await self._fetch(1)

    async def refresh(self) -> bool:
        """Invalidate the cached sequence for the current filters and restart at page 1."""
        self._generation += 1
        self.query_cache.invalidate(self.query_key)
        return await self._fetch(1)

    async def set_filters(self, filters: Optional[dict[str, Any]]) -> bool:
        """Switch to a new filter set and show its first page.

        A request still in flight for the old filters is left to finish; its
        page is kept under the old query key only.

        Returns:
            True if a network request was made
        """
        new_filters = dict(filters or {})
        if new_filters == self._filters:
            return False
        self._generation += 1
        self._filters = new_filters
        self.store.clear_slice(self.slice_name)
        return await self.ensure_loaded()

    async def _fetch(self, page_number: int) -> bool:
        async with self._lock:
            generation = self._generation
            key = self.query_key
            self.store.set_loading(self.slice_name, True)
            try:
                page = await self._fetch_with_retry(page_number)
            except (BackendError, httpx.HTTPError) as e:
                if generation == self._generation:
                    self.store.set_error(self.slice_name, str(e))
                return True
            finally:
                self.store.set_loading(self.slice_name, False)

            if generation != self._generation:
                if key != self.query_key:
                    self.query_cache.append_page(key, page)
                logger.debug(
                    f"{self.slice_name.value}: discarding superseded page {page_number}"
                )
                return True

            self._merge(key, page)
            return True

    async def _fetch_with_retry(self, page_number: int) -> PageResponse:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                return await self.client.fetch_page(
                    self.endpoint, page_number, self.page_size, self._filters
                )
            except (BackendError, httpx.HTTPError) as e:
                if attempt < attempts - 1:
                    logger.warning(
                        f"{self.slice_name.value} page {page_number} failed "
                        f"(attempt {attempt + 1}/{attempts}): {e}"
                    )
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                    continue
                logger.error(
                    f"{self.slice_name.value} page {page_number} failed after "
                    f"{attempts} attempts: {e}"
                )
                raise

        raise BackendError(self.slice_name.value, "Max retries exceeded")

    def _merge(self, key: QueryKey, page: PageResponse) -> None:
        self.query_cache.append_page(key, page)
        if page.pagination.page <= 1:
            self.store.set_slice(self.slice_name, page.data)
        else:
            self.store.append_slice(self.slice_name, page.data)
        self.store.set_pagination(self.slice_name, page.pagination.page, page.has_more)
        self.store.set_error(self.slice_name, None)
        logger.info(
            f"Loaded {self.slice_name.value} page {page.pagination.page}/"
            f"{page.pagination.total_pages} "
            f"({len(self.store.records(self.slice_name))} records cached)"
        )
