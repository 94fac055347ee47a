"""Tests for backoff computation and the retry loop."""

import asyncio
import random

import httpx
import openai
import pytest

from screenscope.concurrency.rate_limiter import RateLimitTracker
from screenscope.errors.classifier import ErrorClassifier
from screenscope.errors.exceptions import AIError, ResponseParseError
from screenscope.errors.retry import RetryOrchestrator, compute_delay
from screenscope.types import ErrorKind, RetryConfig

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _mock_response(status_code: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code=status_code, request=_REQUEST, headers=headers)


def _no_jitter(**kwargs) -> RetryConfig:
    return RetryConfig(jitter_factor=0.0, **kwargs)


class _Flaky:
    """Fails with the given exceptions in turn, then returns ``result``."""

    def __init__(self, *failures: BaseException, result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestComputeDelay:
    def test_exponential_sequence_capped(self):
        config = RetryConfig()
        delays = [compute_delay(n, config, jitter=False) for n in range(7)]
        assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]

    def test_jitter_bounds(self):
        config = RetryConfig()
        rng = random.Random(42)
        for attempt in range(6):
            base = min(30000, 1000 * 2**attempt)
            for _ in range(50):
                delay = compute_delay(attempt, config, rng=rng)
                assert base * 0.9 - 1 <= delay <= base * 1.1

    def test_never_negative(self):
        config = RetryConfig(jitter_factor=1.0)
        rng = random.Random(0)
        assert all(compute_delay(0, config, rng=rng) >= 0 for _ in range(100))

    def test_config_validation(self):
        with pytest.raises(ValueError):
            RetryConfig(backoff_multiplier=0.5)
        with pytest.raises(ValueError):
            RetryConfig(jitter_factor=1.5)
        with pytest.raises(ValueError):
            RetryConfig(max_retries=-1)


class TestRetryOrchestrator:
    async def test_success_first_try(self, fake_sleep):
        orchestrator = RetryOrchestrator(sleep=fake_sleep)
        op = _Flaky()
        result, state = await orchestrator.run_with_state(op)
        assert result == "ok"
        assert state.attempt == 1
        assert fake_sleep.calls == []

    async def test_retries_then_succeeds(self, fake_sleep):
        retries = []
        orchestrator = RetryOrchestrator(config=_no_jitter(), sleep=fake_sleep)
        op = _Flaky(ConnectionError("reset"), ConnectionError("reset"))

        result = await orchestrator.run(op, on_retry=lambda *a: retries.append(a))

        assert result == "ok"
        assert op.calls == 3
        assert fake_sleep.delays_ms == [1000, 2000]
        assert retries == [(1, ErrorKind.NETWORK, 1000), (2, ErrorKind.NETWORK, 2000)]

    async def test_auth_error_not_retried(self, fake_sleep):
        orchestrator = RetryOrchestrator(sleep=fake_sleep)
        op = _Flaky(
            openai.AuthenticationError(message="bad key", response=_mock_response(401), body=None)
        )

        with pytest.raises(AIError) as exc_info:
            await orchestrator.run(op)

        assert exc_info.value.kind == ErrorKind.AUTH_INVALID
        assert exc_info.value.attempts == 1
        assert op.calls == 1
        assert fake_sleep.calls == []

    async def test_exhaustion(self, fake_sleep):
        orchestrator = RetryOrchestrator(config=_no_jitter(max_retries=3), sleep=fake_sleep)
        op = _Flaky(*[ResponseParseError("bad json") for _ in range(10)])

        with pytest.raises(AIError) as exc_info:
            await orchestrator.run(op)

        err = exc_info.value
        assert err.kind == ErrorKind.RESPONSE_PARSE
        assert err.attempts == 4
        assert isinstance(err.__cause__, ResponseParseError)
        assert op.calls == 4
        assert fake_sleep.delays_ms == [1000, 2000, 4000]

    async def test_zero_retries(self, fake_sleep):
        orchestrator = RetryOrchestrator(config=_no_jitter(max_retries=0), sleep=fake_sleep)
        op = _Flaky(ConnectionError("reset"))
        with pytest.raises(AIError):
            await orchestrator.run(op)
        assert op.calls == 1

    async def test_unknown_not_retried_when_configured(self, fake_sleep):
        orchestrator = RetryOrchestrator(
            classifier=ErrorClassifier(unknown_retryable=False), sleep=fake_sleep
        )
        op = _Flaky(RuntimeError("weird"))
        with pytest.raises(AIError) as exc_info:
            await orchestrator.run(op)
        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert op.calls == 1

    async def test_rejected_request_not_retried(self, fake_sleep):
        orchestrator = RetryOrchestrator(config=_no_jitter(), sleep=fake_sleep)
        op = _Flaky(
            openai.BadRequestError(
                message="image too large", response=_mock_response(400), body=None
            )
        )
        with pytest.raises(AIError) as exc_info:
            await orchestrator.run(op)
        assert exc_info.value.status_code == 400
        assert op.calls == 1
        assert fake_sleep.calls == []

    async def test_rate_limit_waits_for_retry_after(self, fake_clock, fake_sleep):
        tracker = RateLimitTracker(clock=fake_clock)
        orchestrator = RetryOrchestrator(
            config=_no_jitter(), rate_limiter=tracker, sleep=fake_sleep
        )
        op = _Flaky(
            openai.RateLimitError(
                message="slow down",
                response=_mock_response(429, {"retry-after-ms": "5000"}),
                body=None,
            )
        )

        retries = []

        result = await orchestrator.run(op, on_retry=lambda *a: retries.append(a))

        assert result == "ok"
        assert fake_sleep.delays_ms == [5000]
        assert retries == [(1, ErrorKind.RATE_LIMITED, 5000)]
        status = tracker.status()
        assert not status.is_limited
        assert status.consecutive_hits == 0

    async def test_short_retry_after_keeps_backoff(self, fake_clock, fake_sleep):
        orchestrator = RetryOrchestrator(
            config=_no_jitter(),
            rate_limiter=RateLimitTracker(clock=fake_clock),
            sleep=fake_sleep,
        )
        op = _Flaky(
            openai.RateLimitError(
                message="slow down",
                response=_mock_response(429, {"retry-after-ms": "200"}),
                body=None,
            )
        )

        assert await orchestrator.run(op) == "ok"
        assert fake_sleep.delays_ms == [1000]

    async def test_pre_wait_does_not_consume_attempts(self, fake_clock, fake_sleep):
        tracker = RateLimitTracker(clock=fake_clock)
        tracker.record(ErrorKind.RATE_LIMITED, retry_after_ms=3000)
        orchestrator = RetryOrchestrator(
            config=_no_jitter(max_retries=0), rate_limiter=tracker, sleep=fake_sleep
        )
        op = _Flaky()

        result, state = await orchestrator.run_with_state(op)

        assert result == "ok"
        assert state.attempt == 1
        assert fake_sleep.delays_ms == [3000]

    async def test_timeout_per_attempt(self, fake_sleep):
        orchestrator = RetryOrchestrator(
            config=_no_jitter(max_retries=1), sleep=fake_sleep, timeout_ms=50
        )
        calls = 0

        async def never_resolves():
            nonlocal calls
            calls += 1
            await asyncio.Event().wait()

        with pytest.raises(AIError) as exc_info:
            await orchestrator.run(never_resolves)

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert exc_info.value.attempts == 2
        assert calls == 2
