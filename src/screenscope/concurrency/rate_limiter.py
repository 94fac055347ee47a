"""Process-wide tracker of rate-limit signals from the AI provider."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable

from screenscope.types import ErrorKind, RateLimitStatus

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 30_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimitTracker:
    """Records consecutive rate-limit hits and the earliest permissible retry.

    One instance is shared by every request in the process. All reads and
    writes go through a lock so concurrent rate-limit signals never lose an
    update, whether callers run on threads or on an event loop.
    """

    def __init__(
        self,
        default_wait_ms: int = DEFAULT_WAIT_MS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._default_wait_ms = default_wait_ms
        self._clock = clock or _monotonic_ms
        self._lock = threading.Lock()

        self._reset_at: float | None = None
        self._consecutive_hits = 0

    def record(self, kind: ErrorKind | None, retry_after_ms: int | None = None) -> None:
        """Record a classified failure. Only RATE_LIMITED changes state."""
        if kind != ErrorKind.RATE_LIMITED:
            return
        wait_ms = retry_after_ms if retry_after_ms is not None else self._default_wait_ms
        with self._lock:
            reset_at = self._clock() + wait_ms
            # A shorter hint arriving later never shortens a longer pending wait
            if self._reset_at is None or reset_at > self._reset_at:
                self._reset_at = reset_at
            self._consecutive_hits += 1
            hits = self._consecutive_hits
        logger.warning("Rate limited by AI provider (hit #%d); waiting %dms", hits, wait_ms)

    def record_success(self) -> None:
        """Clear all rate-limit state after a successful call."""
        with self._lock:
            self._reset_at = None
            self._consecutive_hits = 0

    def wait_time_ms(self) -> int:
        with self._lock:
            return self._wait_locked()

    def status(self) -> RateLimitStatus:
        """Return a read-only snapshot of the current limit state."""
        with self._lock:
            wait = self._wait_locked()
            return RateLimitStatus(
                is_limited=wait > 0,
                wait_time_ms=wait,
                consecutive_hits=self._consecutive_hits,
            )

    def reset(self) -> None:
        """Reset all state (for testing)."""
        self.record_success()

    def _wait_locked(self) -> int:
        if self._reset_at is None:
            return 0
        remaining = self._reset_at - self._clock()
        if remaining <= 0:
            # Limit window elapsed; hit count survives until a success
            self._reset_at = None
            return 0
        return math.ceil(remaining)
