"""Cache storage protocol."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from screenscope.types import CacheEntry


@runtime_checkable
class CacheStore(Protocol):
    """Interface for analysis cache backends.

    Entries are keyed by ``(entity_id, combined_checksum)``. A new entry for
    an entity supersedes older ones for ``get`` without deleting them.
    Implementations raise ``StorageError`` on backend failure.
    """

    def get(self, entity_id: str) -> CacheEntry | None:
        """Return the most recently written entry for ``entity_id``."""
        ...

    def put(self, entry: CacheEntry) -> CacheEntry:
        """Persist ``entry`` atomically and return it."""
        ...

    def touch(self, entry: CacheEntry, now: datetime | None = None) -> CacheEntry:
        """Record a hit on ``entry`` and return the updated entry."""
        ...

    def invalidate(self, entity_id: str) -> int:
        """Delete every entry for ``entity_id``. Returns the count deleted."""
        ...

    def clear(self) -> None: ...

    @property
    def entry_count(self) -> int: ...

    def close(self) -> None: ...
