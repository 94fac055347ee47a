"""Retry engine with bounded exponential backoff and jitter around AI calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from screenscope.concurrency.rate_limiter import RateLimitTracker
from screenscope.concurrency.timeout import run_with_timeout
from screenscope.errors.classifier import ErrorClassifier
from screenscope.types import ErrorKind, RetryConfig, RetryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, ErrorKind, int], None]
SleepFn = Callable[[float], Awaitable[None]]


def compute_delay(
    attempt: int,
    config: RetryConfig,
    jitter: bool = True,
    rng: random.Random | None = None,
) -> int:
    """Compute the wait in milliseconds before retrying after ``attempt`` (0-based).

    The base delay is ``min(max_delay, initial * multiplier ** attempt)``;
    jitter then perturbs it uniformly within ``± jitter_factor``.
    """
    base = min(
        float(config.max_delay_ms),
        config.initial_delay_ms * config.backoff_multiplier**attempt,
    )
    if jitter and config.jitter_factor > 0:
        spread = (rng or random).uniform(-config.jitter_factor, config.jitter_factor)
        base *= 1 + spread
    return max(0, int(base))


class RetryOrchestrator:
    """Runs one operation with classified, rate-limit-aware retries.

    The loop is an explicit ``RetryState`` machine. The sleep function is
    injected, so tests can drive it without real waiting and thread-based
    callers can pass a blocking sleep wrapped with ``asyncio.to_thread``.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        rate_limiter: RateLimitTracker | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._rate_limiter = rate_limiter or RateLimitTracker()
        self._classifier = classifier or ErrorClassifier()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng
        self._timeout_ms = timeout_ms

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def rate_limiter(self) -> RateLimitTracker:
        return self._rate_limiter

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: RetryCallback | None = None,
    ) -> T:
        """Execute ``operation``, retrying retryable failures.

        Raises the last classified ``AIError`` (with ``attempts`` set) when the
        failure is not retryable or retries are exhausted.
        """
        result, _ = await self.run_with_state(operation, on_retry)
        return result

    async def run_with_state(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: RetryCallback | None = None,
    ) -> tuple[T, RetryState]:
        """Like ``run`` but also returns the final ``RetryState``."""
        state = RetryState()
        max_attempts = self._config.max_retries + 1

        while True:
            await self._wait_for_rate_limit()

            try:
                result = await run_with_timeout(operation, self._timeout_ms)
            except Exception as exc:
                error = self._classifier.classify(exc)
                state.last_error = error.kind
                error.attempts = state.attempt + 1

                if error.kind == ErrorKind.RATE_LIMITED:
                    self._rate_limiter.record(error.kind, error.retry_after_ms)

                if not error.retryable or error.attempts >= max_attempts:
                    logger.warning(
                        "Giving up on attempt %d/%d: %s (retryable=%s)",
                        error.attempts,
                        max_attempts,
                        error.kind.value,
                        error.retryable,
                    )
                    if error is exc:
                        raise
                    raise error from exc

                state.next_delay_ms = compute_delay(state.attempt, self._config, rng=self._rng)
                if error.kind == ErrorKind.RATE_LIMITED and error.retry_after_ms is not None:
                    # The provider's window is the real wait
                    state.next_delay_ms = max(state.next_delay_ms, error.retry_after_ms)
                logger.warning(
                    "Retryable error (attempt %d/%d): %s. Retrying in %dms",
                    error.attempts,
                    max_attempts,
                    error.kind.value,
                    state.next_delay_ms,
                )
                if on_retry is not None:
                    on_retry(error.attempts, error.kind, state.next_delay_ms)

                await self._sleep(state.next_delay_ms / 1000)
                state.attempt += 1
                continue

            self._rate_limiter.record_success()
            state.attempt += 1
            return result, state

    async def _wait_for_rate_limit(self) -> None:
        # Waiting out a known limit does not consume an attempt
        while True:
            wait_ms = self._rate_limiter.wait_time_ms()
            if wait_ms <= 0:
                return
            logger.info("Rate limit active; waiting %dms before next attempt", wait_ms)
            await self._sleep(wait_ms / 1000)
