"""In-memory LRU cache store."""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime

from screenscope.types import CacheEntry

_DEFAULT_MAX_ENTRIES = 50


class MemoryCacheStore:
    """In-memory LRU store with entry-count eviction."""

    def __init__(self, max_entries: int = _DEFAULT_MAX_ENTRIES) -> None:
        self._store: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()
        self._latest: dict[str, tuple[str, str]] = {}
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def get(self, entity_id: str) -> CacheEntry | None:
        with self._lock:
            key = self._latest.get(entity_id)
            if key is None:
                return None
            return self._store.get(key)

    def put(self, entry: CacheEntry) -> CacheEntry:
        key = (entry.entity_id, entry.combined_checksum)
        with self._lock:
            self._store.pop(key, None)
            while len(self._store) >= self._max_entries and self._store:
                self._evict_oldest()
            self._store[key] = entry
            self._latest[entry.entity_id] = key
        return entry

    def touch(self, entry: CacheEntry, now: datetime | None = None) -> CacheEntry:
        updated = entry.touched(now)
        key = (entry.entity_id, entry.combined_checksum)
        with self._lock:
            if key in self._store:
                self._store[key] = updated
                # Move to end (most recently used)
                self._store.move_to_end(key)
        return updated

    def invalidate(self, entity_id: str) -> int:
        with self._lock:
            to_remove = [key for key in self._store if key[0] == entity_id]
            for key in to_remove:
                del self._store[key]
            self._latest.pop(entity_id, None)
        return len(to_remove)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._latest.clear()

    def entries_for(self, entity_id: str) -> list[CacheEntry]:
        with self._lock:
            return [entry for key, entry in self._store.items() if key[0] == entity_id]

    @property
    def entry_count(self) -> int:
        return len(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def close(self) -> None:
        pass

    def _evict_oldest(self) -> None:
        key, _ = self._store.popitem(last=False)
        if self._latest.get(key[0]) == key:
            # Fall back to the newest surviving entry for that entity
            survivors = [k for k in self._store if k[0] == key[0]]
            if survivors:
                newest = max(survivors, key=lambda k: self._store[k].created_at)
                self._latest[key[0]] = newest
            else:
                del self._latest[key[0]]
