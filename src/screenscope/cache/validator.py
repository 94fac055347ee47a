"""Hit/miss decision for a stored entry against freshly computed checksums."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from screenscope.cache.keys import combine_checksums
from screenscope.types import (
    CacheEntry,
    CacheValidationOutcome,
    ChecksumRecord,
    InvalidationReason,
    utcnow,
)


class ChecksumComparison(BaseModel):
    """Per-item diff between current and cached checksums, matched by item id."""

    changed_item_ids: list[str] = Field(default_factory=list)
    added_item_ids: list[str] = Field(default_factory=list)
    removed_item_ids: list[str] = Field(default_factory=list)
    order_changed: bool = False

    @property
    def is_match(self) -> bool:
        return not (
            self.changed_item_ids
            or self.added_item_ids
            or self.removed_item_ids
            or self.order_changed
        )

    @property
    def all_changed_ids(self) -> list[str]:
        return [*self.changed_item_ids, *self.added_item_ids, *self.removed_item_ids]


def compare_checksums(
    current: Sequence[ChecksumRecord],
    cached: Sequence[ChecksumRecord],
) -> ChecksumComparison:
    current_map = {r.item_id: r.checksum for r in current}
    cached_map = {r.item_id: r.checksum for r in cached}

    changed: list[str] = []
    added: list[str] = []
    for item_id, checksum in current_map.items():
        previous = cached_map.get(item_id)
        if previous is None:
            added.append(item_id)
        elif previous != checksum:
            changed.append(item_id)
    removed = [item_id for item_id in cached_map if item_id not in current_map]

    # Order is compared only over ids present on both sides
    common_current = [r.item_id for r in current if r.item_id in cached_map]
    common_cached = [r.item_id for r in cached if r.item_id in current_map]

    return ChecksumComparison(
        changed_item_ids=changed,
        added_item_ids=added,
        removed_item_ids=removed,
        order_changed=common_current != common_cached,
    )


def validate_entry(
    entry: CacheEntry | None,
    current: Sequence[ChecksumRecord],
    force_refresh: bool = False,
    max_age_seconds: float | None = None,
    now: datetime | None = None,
) -> CacheValidationOutcome:
    """Decide whether ``entry`` may be served for the ``current`` item checksums.

    Checks run in fixed precedence: missing entry, forced refresh, item
    count, pure reordering, content change, age. The first failing check
    names the invalidation reason.
    """
    if entry is None:
        return CacheValidationOutcome.miss(InvalidationReason.NO_ENTRY)

    if force_refresh:
        return CacheValidationOutcome.miss(InvalidationReason.FORCED_REFRESH)

    if entry.item_count != len(current):
        comparison = compare_checksums(current, entry.item_checksums)
        return CacheValidationOutcome.miss(
            InvalidationReason.COUNT_CHANGED, comparison.all_changed_ids
        )

    stored = [r.checksum for r in entry.item_checksums]
    fresh = [r.checksum for r in current]

    if stored != fresh and Counter(stored) == Counter(fresh):
        return CacheValidationOutcome.miss(InvalidationReason.ORDER_CHANGED)

    if entry.combined_checksum != combine_checksums(fresh) or stored != fresh:
        comparison = compare_checksums(current, entry.item_checksums)
        return CacheValidationOutcome.miss(
            InvalidationReason.CHECKSUM_MISMATCH, comparison.all_changed_ids
        )

    if max_age_seconds is not None and entry.age_seconds(now or utcnow()) > max_age_seconds:
        return CacheValidationOutcome.miss(InvalidationReason.EXPIRED)

    return CacheValidationOutcome.hit(entry)
