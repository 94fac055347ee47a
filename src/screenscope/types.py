"""Shared Pydantic models for screenscope."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ──


class InvalidationReason(StrEnum):
    NO_ENTRY = "NO_ENTRY"
    CHECKSUM_MISMATCH = "CHECKSUM_MISMATCH"
    COUNT_CHANGED = "COUNT_CHANGED"
    ORDER_CHANGED = "ORDER_CHANGED"
    EXPIRED = "EXPIRED"
    FORCED_REFRESH = "FORCED_REFRESH"


class ErrorKind(StrEnum):
    AUTH_INVALID = "AUTH_INVALID"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    NETWORK = "NETWORK"
    RESPONSE_PARSE = "RESPONSE_PARSE"
    VALIDATION = "VALIDATION"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


class CacheStatus(StrEnum):
    CHECKING = "checking"
    HIT = "hit"
    MISS = "miss"
    STORING = "storing"
    STORED = "stored"
    STORE_FAILED = "store_failed"


# ── Source items and checksums ──


class ItemRef(BaseModel):
    """A source item (screenshot) belonging to an entity."""

    id: str
    url: str
    order: int = 0
    caption: str | None = None


class BatchingInfo(BaseModel):
    """How many of the provided items one request will actually analyze."""

    total_provided: int
    analyzing: int
    was_truncated: bool
    max_allowed: int


class ChecksumRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    checksum: str
    source_url: str
    generated_at: datetime = Field(default_factory=utcnow)


class FetchedItem(BaseModel):
    """An item whose bytes were read and hashed during a request."""

    ref: ItemRef
    data: bytes
    record: ChecksumRecord
    mime_type: str = "image/png"


class CacheKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    combined_checksum: str
    item_count: int

    def as_string(self) -> str:
        return f"{self.entity_id}:{self.combined_checksum}:{self.item_count}"


# ── Cache entries ──


class CacheEntry(BaseModel):
    """A stored analysis result plus the checksums it was computed from."""

    id: str
    entity_id: str
    combined_checksum: str
    item_checksums: list[ChecksumRecord] = Field(default_factory=list)
    result: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime = Field(default_factory=utcnow)
    access_count: int = 0

    @property
    def item_count(self) -> int:
        return len(self.item_checksums)

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or utcnow()) - self.created_at).total_seconds()

    def touched(self, now: datetime | None = None) -> CacheEntry:
        """Return a copy with access metadata bumped for a cache hit."""
        return self.model_copy(
            update={
                "last_accessed_at": now or utcnow(),
                "access_count": self.access_count + 1,
            }
        )


class CacheValidationOutcome(BaseModel):
    is_valid: bool
    cached_result: dict[str, Any] | None = None
    entry_id: str | None = None
    invalidation_reason: InvalidationReason | None = None
    changed_item_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> CacheValidationOutcome:
        has_result = self.cached_result is not None
        has_reason = self.invalidation_reason is not None
        if has_result == has_reason:
            raise ValueError("exactly one of cached_result and invalidation_reason must be set")
        if self.is_valid != has_result:
            raise ValueError("is_valid must be True exactly when a cached result is returned")
        return self

    @classmethod
    def hit(cls, entry: CacheEntry) -> CacheValidationOutcome:
        return cls(is_valid=True, cached_result=entry.result, entry_id=entry.id)

    @classmethod
    def miss(
        cls,
        reason: InvalidationReason,
        changed_item_ids: list[str] | None = None,
    ) -> CacheValidationOutcome:
        return cls(
            is_valid=False,
            invalidation_reason=reason,
            changed_item_ids=changed_item_ids or [],
        )


# ── Retry and rate limiting ──


class RetryConfig(BaseModel):
    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1

    @field_validator("max_retries", "initial_delay_ms", "max_delay_ms")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("backoff_multiplier")
    @classmethod
    def _multiplier_at_least_one(cls, value: float) -> float:
        if value < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        return value

    @field_validator("jitter_factor")
    @classmethod
    def _jitter_in_range(cls, value: float) -> float:
        if not 0 <= value <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        return value


class RetryState(BaseModel):
    attempt: int = 0
    last_error: ErrorKind | None = None
    next_delay_ms: int = 0


class RateLimitStatus(BaseModel):
    is_limited: bool = False
    wait_time_ms: int = 0
    consecutive_hits: int = 0


# ── AI responses and outcomes ──


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AIResponse(BaseModel):
    content: str
    model: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str | None = None


class AnalysisOutcome(BaseModel):
    result: dict[str, Any]
    from_cache: bool = False
    cache_entry_id: str | None = None
    cache_key: CacheKey | None = None
    invalidation_reason: InvalidationReason | None = None
    attempts: int = 0
    coalesced: bool = False
