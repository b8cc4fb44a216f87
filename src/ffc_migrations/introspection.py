"""Cached table and column existence checks.

Schema is assumed stable for the duration of a run, so each
``(table, column)`` pair is looked up in the catalog at most once. The cache
is an explicit object: build one per run and hand the same introspector to
every strategy that should share it.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .storage import Storage

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Optional[str]]


class ColumnCache:
    """Existence results keyed by ``(table, column)``.

    A ``None`` column stands for the table itself.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, bool] = {}
        self._lock = threading.RLock()

    def get(self, table: str, column: str | None = None) -> bool | None:
        with self._lock:
            return self._entries.get((table, column))

    def set(self, table: str, column: str | None, exists: bool) -> None:
        with self._lock:
            self._entries[(table, column)] = exists

    def invalidate(self, table: str | None = None) -> None:
        """Forget cached results for one table, or everything."""
        with self._lock:
            if table is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == table]:
                del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries


class ColumnIntrospector:
    """Answers "does this table/column exist" from a per-run cache."""

    def __init__(self, storage: Storage, cache: ColumnCache | None = None):
        self.storage = storage
        self.cache = cache if cache is not None else ColumnCache()

    def exists(self, table: str) -> bool:
        """Check whether a table exists."""
        cached = self.cache.get(table)
        if cached is not None:
            return cached
        result = self.storage.table_exists(table)
        self.cache.set(table, None, result)
        logger.debug(f"Table {table} exists: {result}")
        return result

    def column_exists(self, table: str, column: str) -> bool:
        """Check whether a column exists; False when the table is missing."""
        cached = self.cache.get(table, column)
        if cached is not None:
            return cached
        result = self.exists(table) and self.storage.column_exists(table, column)
        self.cache.set(table, column, result)
        return result

    def existing_columns(self, table: str, candidates: Iterable[str | None]) -> List[str]:
        """Filter candidate column names down to those present on the table."""
        return [c for c in candidates if c and self.column_exists(table, c)]

    def invalidate(self, table: str | None = None) -> None:
        self.cache.invalidate(table)
