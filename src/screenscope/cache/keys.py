"""Content checksums and order-sensitive cache keys."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from screenscope.errors.exceptions import FetchError
from screenscope.types import CacheKey, ChecksumRecord, FetchedItem, ItemRef, utcnow
from screenscope.utils.image import detect_mime_type

logger = logging.getLogger(__name__)

_SEPARATOR = ":"


class BytesFetcher(Protocol):
    async def fetch_bytes(self, reference: str) -> bytes: ...


def hash_bytes(data: bytes) -> str:
    """SHA-256 hex digest of raw item bytes."""
    return hashlib.sha256(data).hexdigest()


def generate_checksum(
    item: ItemRef,
    data: bytes,
    now: datetime | None = None,
) -> ChecksumRecord:
    return ChecksumRecord(
        item_id=item.id,
        checksum=hash_bytes(data),
        source_url=item.url,
        generated_at=now or utcnow(),
    )


def canonical_order(items: Sequence[ItemRef]) -> list[ItemRef]:
    """Sort by ``order``; ties keep their input position."""
    return sorted(items, key=lambda item: item.order)


async def generate_checksums(
    items: Sequence[ItemRef],
    fetcher: BytesFetcher,
    on_progress: Callable[[int], None] | None = None,
) -> list[FetchedItem]:
    """Fetch and hash every item in canonical order.

    The first unreadable item aborts the whole batch with ``FetchError``:
    without every checksum no cache decision is possible.
    """
    ordered = canonical_order(items)
    fetched: list[FetchedItem] = []
    total = len(ordered)

    for i, item in enumerate(ordered, 1):
        try:
            data = await fetcher.fetch_bytes(item.url)
        except FetchError as exc:
            exc.item_id = exc.item_id or item.id
            raise
        except Exception as exc:
            raise FetchError(
                f"Failed to fetch item {item.id}: {exc}", url=item.url, item_id=item.id
            ) from exc

        record = generate_checksum(item, data)
        logger.debug("Checksum for %s: %s", item.id, record.checksum[:12])
        fetched.append(
            FetchedItem(
                ref=item,
                data=data,
                record=record,
                mime_type=detect_mime_type(data, item.url),
            )
        )
        if on_progress is not None:
            on_progress(round(i / total * 100))

    return fetched


def combine_checksums(checksums: Sequence[str]) -> str:
    """Hash the ordered checksum sequence. Reordering changes the result."""
    combined = _SEPARATOR.join(checksums)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def build_cache_key(entity_id: str, records: Sequence[ChecksumRecord]) -> CacheKey:
    """Derive the cache key from the entity id and ordered checksum records."""
    return CacheKey(
        entity_id=entity_id,
        combined_checksum=combine_checksums([r.checksum for r in records]),
        item_count=len(records),
    )
