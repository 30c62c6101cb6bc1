"""Page sequences keyed by the query that produced them.

Mirrors the way the listing pages cache infinite queries: every query key
(``("properties", "map")``, ``("properties", "list", {...filters})``) owns an
ordered list of fetched pages plus the time the data was last updated. The
fetch coordinators consult it for freshness and the persister snapshots it.
"""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from ..models.property import PageResponse, PropertyRecord

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]

# 8 hours fresh, 12 hours before inactive entries are dropped
DEFAULT_STALE_TIME = 8 * 60 * 60
DEFAULT_GC_TIME = 12 * 60 * 60


def query_hash(key: QueryKey) -> str:
    """Stable string identity of a query key."""
    return json.dumps(list(key), sort_keys=True, separators=(",", ":"), default=str)


def map_query_key() -> QueryKey:
    return ("properties", "map")


def list_query_key(filters: Optional[dict[str, Any]] = None) -> QueryKey:
    return ("properties", "list", dict(sorted((filters or {}).items())))


@dataclass
class QueryEntry:
    """Cached page sequence for one query."""

    key: QueryKey
    pages: list[PageResponse] = field(default_factory=list)
    data_updated_at: float = 0.0
    last_accessed_at: float = 0.0

    @property
    def records(self) -> list[PropertyRecord]:
        return [record for page in self.pages for record in page.data]

    @property
    def last_page(self) -> Optional[PageResponse]:
        return self.pages[-1] if self.pages else None

    @property
    def has_more(self) -> bool:
        last = self.last_page
        return last.has_more if last else True


class QueryCache:
    """In-memory store of query results with stale/GC timing.

    Example:
        cache = QueryCache()
        cache.append_page(map_query_key(), page)
        if cache.is_fresh(map_query_key()):
            records = cache.get(map_query_key()).records
    """

    def __init__(
        self,
        stale_time: float = DEFAULT_STALE_TIME,
        gc_time: float = DEFAULT_GC_TIME,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the query cache.

        Args:
            stale_time: Seconds a result stays fresh (default 8 hours)
            gc_time: Seconds of inactivity before eviction (default 12 hours)
            clock: Returns the current time in epoch seconds
        """
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock
        self._entries: dict[str, QueryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: QueryKey) -> bool:
        return query_hash(key) in self._entries

    def now(self) -> float:
        return self._clock()

    def entries(self) -> list[QueryEntry]:
        return list(self._entries.values())

    def get(self, key: QueryKey) -> Optional[QueryEntry]:
        """Return the entry for ``key`` and mark it as accessed."""
        entry = self._entries.get(query_hash(key))
        if entry is not None:
            entry.last_accessed_at = self._clock()
        return entry

    def is_fresh(self, key: QueryKey) -> bool:
        entry = self._entries.get(query_hash(key))
        if entry is None or not entry.pages:
            return False
        return self._clock() - entry.data_updated_at < self.stale_time

    def set_pages(
        self,
        key: QueryKey,
        pages: list[PageResponse],
        updated_at: Optional[float] = None,
    ) -> QueryEntry:
        """Replace the page sequence stored for ``key``."""
        now = self._clock()
        entry = QueryEntry(
            key=key,
            pages=list(pages),
            data_updated_at=now if updated_at is None else updated_at,
            last_accessed_at=now,
        )
        self._entries[query_hash(key)] = entry
        return entry

    def append_page(self, key: QueryKey, page: PageResponse) -> QueryEntry:
        """Add the next page to the sequence for ``key``.

        A page whose cursor is already present replaces the old copy, so a
        repeated page 1 restarts the sequence.
        """
        existing = self._entries.get(query_hash(key))
        pages = list(existing.pages) if existing else []
        cursor = page.pagination.page
        pages = [p for p in pages if p.pagination.page < cursor]
        pages.append(page)
        return self.set_pages(key, pages)

    def invalidate(self, key: QueryKey) -> bool:
        removed = self._entries.pop(query_hash(key), None)
        if removed is not None:
            logger.debug(f"Invalidated query {query_hash(key)}")
        return removed is not None

    def clear(self) -> None:
        self._entries.clear()

    def collect_garbage(self) -> int:
        """Drop entries not accessed within ``gc_time``.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            h for h, e in self._entries.items()
            if now - e.last_accessed_at > self.gc_time
        ]
        for h in expired:
            del self._entries[h]
        if expired:
            logger.info(f"Garbage collected {len(expired)} inactive queries")
        return len(expired)
