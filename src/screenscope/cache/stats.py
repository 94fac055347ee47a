"""Cache statistics model."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Aggregate cache statistics."""

    entries: int = 0
    hits: int = 0
    misses: int = 0
    stores: int = 0
    store_failures: int = 0
    misses_by_reason: dict[str, int] = Field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0
