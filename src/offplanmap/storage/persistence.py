"""Durable snapshot of the query cache.

Serializes page-level query results to a JSON file under a single namespaced
key so a restarted session can render from a warm cache without any network
round-trip. Malformed or missing content is treated as "no cache".
"""

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models.property import PageResponse
from .query_cache import DEFAULT_STALE_TIME, QueryCache, map_query_key, query_hash

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = Path.home() / ".offplanmap" / "cache.json"
DEFAULT_STORAGE_KEY = "offplanmap-query-cache"


class PersistedQuery(BaseModel):
    """One query snapshot as written to durable storage."""

    query_key: list[Any]
    query_hash: str
    data: list[PageResponse] = Field(default_factory=list)
    data_updated_at: float


class CachePersister:
    """Persist and restore a QueryCache to a JSON file.

    Example:
        persister = CachePersister(Path("cache.json"))
        persister.restore(query_cache)   # once, before any fetch
        ...
        persister.persist(query_cache)   # on a timer and at shutdown
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        stale_time: float = DEFAULT_STALE_TIME,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the persister.

        Args:
            path: JSON file used as durable storage.
                  Defaults to ~/.offplanmap/cache.json
            storage_key: Namespaced key the snapshots are stored under
            stale_time: Snapshots older than this many seconds are not restored
            clock: Returns the current time in epoch seconds
        """
        self.path = Path(path) if path else DEFAULT_CACHE_FILE
        self.storage_key = storage_key
        self.stale_time = stale_time
        self._clock = clock

    def _read_blob(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            blob = json.load(f)
        if not isinstance(blob, dict):
            raise ValueError("cache file does not hold a JSON object")
        return blob

    def _write_blob(self, blob: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def persist(self, query_cache: QueryCache) -> int:
        """Write every cached query to durable storage.

        Returns:
            Number of queries written (0 if writing failed)
        """
        items = [
            {
                "query_key": list(entry.key),
                "query_hash": query_hash(entry.key),
                "data": [page.to_payload() for page in entry.pages],
                "data_updated_at": entry.data_updated_at,
            }
            for entry in query_cache.entries()
            if entry.pages
        ]

        try:
            try:
                blob = self._read_blob()
            except (json.JSONDecodeError, ValueError):
                blob = {}
            blob[self.storage_key] = items
            self._write_blob(blob)
        except OSError as e:
            logger.error(f"Failed to persist query cache: {e}")
            return 0

        logger.debug(f"Persisted {len(items)} queries to {self.path}")
        return len(items)

    def load(self) -> list[PersistedQuery]:
        """Read persisted snapshots, skipping entries that fail validation.

        Raises:
            json.JSONDecodeError, ValueError, OSError: If the blob is unreadable
        """
        raw = self._read_blob().get(self.storage_key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValueError(f"{self.storage_key} is not a list")

        snapshots = []
        for item in raw:
            try:
                snapshots.append(PersistedQuery.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed cache entry: {e.error_count()} errors")
        return snapshots

    def restore(self, query_cache: QueryCache) -> int:
        """Inject fresh snapshots into ``query_cache``.

        Entries older than the staleness threshold are skipped. Restored
        entries replace whatever the cache held for the same key.

        Returns:
            Number of queries restored
        """
        try:
            snapshots = self.load()
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to restore cache from {self.path}: {e}")
            return 0

        now = self._clock()
        restored = 0
        for snapshot in snapshots:
            if not snapshot.data:
                continue
            if now - snapshot.data_updated_at >= self.stale_time:
                logger.debug(f"Skipping stale snapshot {snapshot.query_hash}")
                continue
            query_cache.set_pages(
                tuple(snapshot.query_key),
                snapshot.data,
                updated_at=snapshot.data_updated_at,
            )
            restored += 1

        if restored:
            logger.info(f"Restored {restored} cached queries from {self.path}")
        return restored

    def clear(self) -> None:
        """Remove the persisted snapshots, keeping other keys in the file."""
        try:
            blob = self._read_blob()
        except (OSError, ValueError):
            blob = {}
        if blob.pop(self.storage_key, None) is None:
            return
        try:
            self._write_blob(blob)
        except OSError as e:
            logger.error(f"Failed to clear persisted cache: {e}")

    def describe(self) -> dict[str, Any]:
        """Report on the persisted map query.

        Returns:
            Dict with has_cache, cache_size, last_updated and expires_at
        """
        empty = {
            "has_cache": False,
            "cache_size": 0,
            "last_updated": None,
            "expires_at": None,
        }
        try:
            snapshots = self.load()
        except (OSError, ValueError):
            return empty

        wanted = query_hash(map_query_key())
        for snapshot in snapshots:
            if snapshot.query_hash != wanted:
                continue
            updated = snapshot.data_updated_at
            return {
                "has_cache": True,
                "cache_size": sum(len(page.data) for page in snapshot.data),
                "last_updated": datetime.fromtimestamp(updated),
                "expires_at": datetime.fromtimestamp(updated + self.stale_time),
            }
        return empty
