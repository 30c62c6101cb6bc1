"""Storage modules for the property cache.

This package provides the bounded in-memory record store, the per-query page
cache, and durable snapshots of that cache across restarts.
"""

from .persistence import CachePersister, PersistedQuery
from .query_cache import QueryCache, QueryEntry, list_query_key, map_query_key, query_hash
from .store import CacheState, PropertyStore, SliceName, SliceState, merge_records

__all__ = [
    "CachePersister",
    "CacheState",
    "PersistedQuery",
    "PropertyStore",
    "QueryCache",
    "QueryEntry",
    "SliceName",
    "SliceState",
    "list_query_key",
    "map_query_key",
    "merge_records",
    "query_hash",
]
