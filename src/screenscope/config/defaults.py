"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Model settings
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.0
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_ITEMS = 10

# Comparison and summary settings
MIN_COMPARE_APPS = 2
MAX_COMPARE_APPS = 3
DEFAULT_SUMMARY_TIMEOUT_MS = 30_000
DEFAULT_SUMMARY_MAX_TOKENS = 1024

# Retry settings
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30_000
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_JITTER_FACTOR = 0.1
DEFAULT_RATE_LIMIT_MS = 30_000
DEFAULT_RETRY_UNKNOWN_ERRORS = True

# Cache settings
DEFAULT_CACHE_BACKEND = "memory"
DEFAULT_CACHE_MAX_ENTRIES = 50
DEFAULT_CACHE_MAX_AGE_SECONDS: float | None = None
DEFAULT_SINGLE_FLIGHT = True

# Fetch settings
DEFAULT_FETCH_TIMEOUT_S = 30.0

DEFAULT_LOG_LEVEL = "WARNING"

CACHE_BACKENDS = ("memory", "disk", "none")


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "api_key": None,
        "base_url": None,
        "model": DEFAULT_MODEL,
        "max_tokens": DEFAULT_MAX_TOKENS,
        "temperature": DEFAULT_TEMPERATURE,
        "timeout_ms": DEFAULT_TIMEOUT_MS,
        "max_items": DEFAULT_MAX_ITEMS,
        "summary_timeout_ms": DEFAULT_SUMMARY_TIMEOUT_MS,
        "summary_max_tokens": DEFAULT_SUMMARY_MAX_TOKENS,
        "max_retries": DEFAULT_MAX_RETRIES,
        "initial_delay_ms": DEFAULT_INITIAL_DELAY_MS,
        "max_delay_ms": DEFAULT_MAX_DELAY_MS,
        "backoff_multiplier": DEFAULT_BACKOFF_MULTIPLIER,
        "jitter_factor": DEFAULT_JITTER_FACTOR,
        "rate_limit_default_ms": DEFAULT_RATE_LIMIT_MS,
        "retry_unknown_errors": DEFAULT_RETRY_UNKNOWN_ERRORS,
        "cache_backend": DEFAULT_CACHE_BACKEND,
        "cache_db_path": None,
        "cache_max_entries": DEFAULT_CACHE_MAX_ENTRIES,
        "cache_max_age_seconds": DEFAULT_CACHE_MAX_AGE_SECONDS,
        "single_flight": DEFAULT_SINGLE_FLIGHT,
        "fetch_timeout_s": DEFAULT_FETCH_TIMEOUT_S,
        "log_level": DEFAULT_LOG_LEVEL,
    }
