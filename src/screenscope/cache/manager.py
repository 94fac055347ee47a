"""Analysis cache combining key derivation, entry validation and storage."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Sequence
from pathlib import Path

from screenscope.cache.base import CacheStore
from screenscope.cache.disk import SqliteCacheStore
from screenscope.cache.keys import build_cache_key
from screenscope.cache.memory import MemoryCacheStore
from screenscope.cache.stats import CacheStats
from screenscope.cache.validator import validate_entry
from screenscope.errors.exceptions import StorageError
from screenscope.types import (
    CacheEntry,
    CacheKey,
    CacheValidationOutcome,
    ChecksumRecord,
    InvalidationReason,
    utcnow,
)

logger = logging.getLogger(__name__)


class AnalysisCache:
    """Checksum-validated cache of analysis results over a ``CacheStore``."""

    def __init__(
        self,
        store: CacheStore | None = None,
        max_age_seconds: float | None = None,
        enabled: bool = True,
    ) -> None:
        self._store: CacheStore = store if store is not None else MemoryCacheStore()
        self._max_age_seconds = max_age_seconds
        self._enabled = enabled
        self._stats = CacheStats()
        self._stats_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: dict) -> AnalysisCache:
        backend = str(config.get("cache_backend", "memory")).lower()
        max_age = config.get("cache_max_age_seconds")
        if backend == "none":
            return cls(enabled=False)
        if backend == "disk":
            db_path = config.get("cache_db_path")
            store: CacheStore = SqliteCacheStore(Path(db_path).expanduser() if db_path else None)
        else:
            store = MemoryCacheStore(max_entries=int(config.get("cache_max_entries", 50)))
        return cls(store=store, max_age_seconds=max_age)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def store(self) -> CacheStore:
        return self._store

    def lookup(
        self,
        entity_id: str,
        records: Sequence[ChecksumRecord],
        force_refresh: bool = False,
    ) -> tuple[CacheKey, CacheValidationOutcome]:
        """Build the key for ``records`` and validate the entity's stored entry.

        Store read failures degrade to a NO_ENTRY miss.
        """
        key = build_cache_key(entity_id, records)

        entry: CacheEntry | None = None
        if self._enabled:
            try:
                entry = self._store.get(entity_id)
            except StorageError as e:
                logger.warning("Cache lookup failed for %s, treating as miss: %s", entity_id, e)

        outcome = validate_entry(
            entry,
            records,
            force_refresh=force_refresh,
            max_age_seconds=self._max_age_seconds,
        )

        if outcome.is_valid and entry is not None:
            try:
                self._store.touch(entry)
            except StorageError as e:
                logger.warning("Failed to record cache access for %s: %s", entry.id, e)
            self._record_hit()
            logger.info("Cache hit for %s (entry %s)", entity_id, entry.id)
        else:
            reason = outcome.invalidation_reason or InvalidationReason.NO_ENTRY
            self._record_miss(reason)
            logger.info("Cache miss for %s: %s", entity_id, reason.value)
            if outcome.changed_item_ids:
                logger.debug("Changed items for %s: %s", entity_id, outcome.changed_item_ids)

        return key, outcome

    def store(
        self,
        key: CacheKey,
        records: Sequence[ChecksumRecord],
        result: dict,
    ) -> CacheEntry | None:
        """Persist a freshly computed result under ``key``.

        Returns None when caching is disabled. Raises ``StorageError`` if the
        backend write fails.
        """
        if not self._enabled:
            return None

        now = utcnow()
        entry = CacheEntry(
            id=f"cache-{uuid.uuid4().hex[:16]}",
            entity_id=key.entity_id,
            combined_checksum=key.combined_checksum,
            item_checksums=list(records),
            result=result,
            created_at=now,
            last_accessed_at=now,
            access_count=0,
        )
        try:
            stored = self._store.put(entry)
        except StorageError:
            with self._stats_lock:
                self._stats.store_failures += 1
            raise
        with self._stats_lock:
            self._stats.stores += 1
        logger.info(
            "Stored analysis for %s with %d items (entry %s)",
            key.entity_id,
            key.item_count,
            stored.id,
        )
        return stored

    def invalidate(self, entity_id: str) -> int:
        """Remove every entry for an entity."""
        count = self._store.invalidate(entity_id)
        logger.info("Invalidated %d entries for %s", count, entity_id)
        return count

    def clear(self) -> None:
        """Clear all entries and reset statistics."""
        self._store.clear()
        with self._stats_lock:
            self._stats = CacheStats()

    def stats(self) -> CacheStats:
        """Return aggregate cache statistics."""
        with self._stats_lock:
            snapshot = self._stats.model_copy(deep=True)
        snapshot.entries = self._store.entry_count
        return snapshot

    def close(self) -> None:
        self._store.close()

    def _record_hit(self) -> None:
        with self._stats_lock:
            self._stats.hits += 1

    def _record_miss(self, reason: InvalidationReason) -> None:
        with self._stats_lock:
            self._stats.misses += 1
            self._stats.misses_by_reason[reason.value] = (
                self._stats.misses_by_reason.get(reason.value, 0) + 1
            )
