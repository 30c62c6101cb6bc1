"""Tests for the per-query page cache."""

from offplanmap.models.property import PageResponse
from offplanmap.storage.query_cache import (
    QueryCache,
    list_query_key,
    map_query_key,
    query_hash,
)

from .factories import FakeClock, record_payload

HOUR = 3600


def make_page(page: int, total_pages: int = 3, ids: range = range(1, 4)) -> PageResponse:
    return PageResponse.model_validate(
        {
            "success": True,
            "data": [record_payload(i) for i in ids],
            "pagination": {"page": page, "limit": 3, "totalPages": total_pages, "total": 9},
        }
    )


class TestQueryHash:
    def test_filter_order_does_not_matter(self):
        a = list_query_key({"area": "Marina", "developer": "Emaar"})
        b = list_query_key({"developer": "Emaar", "area": "Marina"})
        assert query_hash(a) == query_hash(b)

    def test_different_filters_differ(self):
        assert query_hash(list_query_key({"area": "A"})) != query_hash(list_query_key({"area": "B"}))
        assert query_hash(map_query_key()) != query_hash(list_query_key())


class TestFreshness:
    """Test the 8 hour stale window."""

    def test_fresh_then_stale(self, query_cache: QueryCache, clock: FakeClock):
        key = map_query_key()
        query_cache.append_page(key, make_page(1))
        assert query_cache.is_fresh(key)

        clock.advance(8 * HOUR - 1)
        assert query_cache.is_fresh(key)

        clock.advance(1)
        assert not query_cache.is_fresh(key)

    def test_unknown_key_not_fresh(self, query_cache: QueryCache):
        assert not query_cache.is_fresh(map_query_key())


class TestPageSequence:
    def test_pages_accumulate_in_order(self, query_cache: QueryCache):
        key = map_query_key()
        query_cache.append_page(key, make_page(1, ids=range(1, 4)))
        entry = query_cache.append_page(key, make_page(2, ids=range(4, 7)))

        assert [p.pagination.page for p in entry.pages] == [1, 2]
        assert [r.id for r in entry.records] == [1, 2, 3, 4, 5, 6]
        assert entry.has_more

    def test_page_one_restarts_sequence(self, query_cache: QueryCache):
        key = map_query_key()
        query_cache.append_page(key, make_page(1))
        query_cache.append_page(key, make_page(2, ids=range(4, 7)))
        entry = query_cache.append_page(key, make_page(1, ids=range(10, 13)))

        assert [p.pagination.page for p in entry.pages] == [1]
        assert [r.id for r in entry.records] == [10, 11, 12]

    def test_invalidate(self, query_cache: QueryCache):
        key = map_query_key()
        query_cache.append_page(key, make_page(1))
        assert query_cache.invalidate(key)
        assert key not in query_cache
        assert not query_cache.invalidate(key)


class TestGarbageCollection:
    """Test the 12 hour inactivity window."""

    def test_inactive_entries_are_dropped(self, query_cache: QueryCache, clock: FakeClock):
        old, active = map_query_key(), list_query_key()
        query_cache.append_page(old, make_page(1))
        query_cache.append_page(active, make_page(1))

        clock.advance(11 * HOUR)
        query_cache.get(active)
        clock.advance(2 * HOUR)

        assert query_cache.collect_garbage() == 1
        assert old not in query_cache
        assert active in query_cache
