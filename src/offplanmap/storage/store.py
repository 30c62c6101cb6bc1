"""Bounded in-memory cache of property records.

The cache holds two independent slices: ``map`` (records destined for the
clustered map) and ``list`` (paged textual listings). Every transition is a
pure function from one immutable ``CacheState`` to the next, and
``PropertyStore`` swaps the whole state in a single assignment. Code running
on the event loop therefore never observes a half-applied update, even when
several fetch completions interleave.

Example:
    store = PropertyStore(max_cache_size=1000)
    store.subscribe(lambda state: print(len(state.map.records)))
    store.append_slice(SliceName.MAP, page.data)
    store.optimize()
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from ..models.property import PropertyRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHE_SIZE = 1000

Listener = Callable[["CacheState"], None]


class SliceName(str, Enum):
    """The two independent record collections."""

    MAP = "map"
    LIST = "list"


@dataclass(frozen=True)
class SliceState:
    """Records and paging status of one slice."""

    records: tuple[PropertyRecord, ...] = ()
    loading: bool = False
    error: Optional[str] = None
    current_page: int = 0
    has_more: bool = True
    last_fetch: Optional[float] = None

    @property
    def ids(self) -> list[int]:
        return [r.id for r in self.records]


@dataclass(frozen=True)
class CacheState:
    """Whole-cache snapshot."""

    map: SliceState = field(default_factory=SliceState)
    list: SliceState = field(default_factory=SliceState)
    total_loaded: int = 0
    last_performance_check: Optional[float] = None
    cache_version: int = 1
    max_cache_size: int = DEFAULT_MAX_CACHE_SIZE

    def slice(self, name: SliceName) -> SliceState:
        return getattr(self, SliceName(name).value)


def merge_records(
    existing: Iterable[PropertyRecord],
    incoming: Iterable[PropertyRecord],
    max_size: int,
) -> tuple[PropertyRecord, ...]:
    """Append ``incoming`` to ``existing`` without duplicate ids.

    The first record seen for an id wins. When the result is larger than
    ``max_size`` the oldest entries are dropped, keeping the most recently
    appended ones.
    """
    combined = list(existing)
    seen = {r.id for r in combined}
    for record in incoming:
        if record.id in seen:
            continue
        seen.add(record.id)
        combined.append(record)

    if len(combined) > max_size:
        combined = combined[-max_size:]
    return tuple(combined)


def _with_slice(state: CacheState, name: SliceName, new_slice: SliceState) -> CacheState:
    updated = replace(state, **{SliceName(name).value: new_slice})
    # Loaded count tracks the map slice only
    return replace(updated, total_loaded=len(updated.map.records))


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------


def set_slice(
    state: CacheState,
    name: SliceName,
    records: Iterable[PropertyRecord],
    now: float,
) -> CacheState:
    """Replace a slice's records wholesale."""
    current = state.slice(name)
    new_records = merge_records((), records, state.max_cache_size)
    return _with_slice(state, name, replace(current, records=new_records, last_fetch=now))


def append_slice(
    state: CacheState,
    name: SliceName,
    records: Iterable[PropertyRecord],
    now: float,
) -> CacheState:
    """Merge records into a slice with de-duplication and trimming."""
    current = state.slice(name)
    new_records = merge_records(current.records, records, state.max_cache_size)
    return _with_slice(state, name, replace(current, records=new_records, last_fetch=now))


def set_loading(state: CacheState, name: SliceName, loading: bool) -> CacheState:
    return _with_slice(state, name, replace(state.slice(name), loading=loading))


def set_error(state: CacheState, name: SliceName, error: Optional[str]) -> CacheState:
    return _with_slice(state, name, replace(state.slice(name), error=error))


def set_pagination(
    state: CacheState, name: SliceName, page: int, has_more: bool
) -> CacheState:
    return _with_slice(
        state, name, replace(state.slice(name), current_page=page, has_more=has_more)
    )


def clear_slice(state: CacheState, name: SliceName) -> CacheState:
    """Empty one slice and reset its cursor, keeping the other intact."""
    return _with_slice(state, name, SliceState())


def clear_all(state: CacheState) -> CacheState:
    """Reset every field and bump the cache version."""
    return CacheState(
        cache_version=state.cache_version + 1,
        max_cache_size=state.max_cache_size,
    )


def optimize(state: CacheState) -> CacheState:
    """Force both slices down to the maximum record count."""
    limit = state.max_cache_size
    result = state
    for name in SliceName:
        current = result.slice(name)
        if len(current.records) > limit:
            result = _with_slice(
                result, name, replace(current, records=current.records[-limit:])
            )
    return result


def mark_performance_check(state: CacheState, now: float) -> CacheState:
    return replace(state, last_performance_check=now)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class PropertyStore:
    """Holds the current ``CacheState`` and notifies subscribers on change.

    One store instance is created per session and passed to the components
    that need it; there is no module-level store.

    Attributes:
        state: The current immutable snapshot.
    """

    def __init__(
        self,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize an empty store.

        Args:
            max_cache_size: Hard cap on records per slice (default 1000)
            clock: Returns the current time in epoch seconds
        """
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be at least 1")
        self._state = CacheState(max_cache_size=max_cache_size)
        self._clock = clock
        self._listeners: list[Listener] = []

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def max_cache_size(self) -> int:
        return self._state.max_cache_size

    def records(self, name: SliceName) -> list[PropertyRecord]:
        return list(self._state.slice(name).records)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with every new state.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: CacheState) -> CacheState:
        if new_state is self._state:
            return new_state
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("Store listener failed")
        return new_state

    def set_slice(
        self,
        name: SliceName,
        records: Iterable[PropertyRecord],
        fetched_at: Optional[float] = None,
    ) -> CacheState:
        """Replace a slice; ``fetched_at`` overrides the fetch time (cache hits)."""
        now = self._clock() if fetched_at is None else fetched_at
        return self._commit(set_slice(self._state, name, records, now))

    def append_slice(
        self, name: SliceName, records: Iterable[PropertyRecord]
    ) -> CacheState:
        before = len(self._state.slice(name).records)
        new_state = append_slice(self._state, name, records, self._clock())
        logger.debug(
            f"Appended to {SliceName(name).value} slice: "
            f"{before} -> {len(new_state.slice(name).records)} records"
        )
        return self._commit(new_state)

    def set_loading(self, name: SliceName, loading: bool) -> CacheState:
        return self._commit(set_loading(self._state, name, loading))

    def set_error(self, name: SliceName, error: Optional[str]) -> CacheState:
        return self._commit(set_error(self._state, name, error))

    def set_pagination(self, name: SliceName, page: int, has_more: bool) -> CacheState:
        return self._commit(set_pagination(self._state, name, page, has_more))

    def clear_slice(self, name: SliceName) -> CacheState:
        return self._commit(clear_slice(self._state, name))

    def clear_all(self) -> CacheState:
        logger.info(f"Clearing cache (version {self._state.cache_version})")
        return self._commit(clear_all(self._state))

    def optimize(self) -> CacheState:
        new_state = optimize(self._state)
        if new_state is not self._state:
            logger.info(
                f"Optimized cache: map={len(new_state.map.records)}, "
                f"list={len(new_state.list.records)}"
            )
        return self._commit(new_state)

    def mark_performance_check(self) -> CacheState:
        return self._commit(mark_performance_check(self._state, self._clock()))

    def stats(self) -> dict[str, Any]:
        """Summarize the cache for status reporting."""
        state = self._state
        return {
            "map_records": len(state.map.records),
            "list_records": len(state.list.records),
            "map_page": state.map.current_page,
            "list_page": state.list.current_page,
            "map_has_more": state.map.has_more,
            "list_has_more": state.list.has_more,
            "map_last_fetch": state.map.last_fetch,
            "list_last_fetch": state.list.last_fetch,
            "total_loaded": state.total_loaded,
            "cache_version": state.cache_version,
            "max_cache_size": state.max_cache_size,
        }
