"""Map raw AI-call failures onto the closed ErrorKind taxonomy."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Mapping
from typing import Any

import httpx
import openai
import pydantic

from screenscope.errors.exceptions import (
    AIError,
    ResponseParseError,
    ResponseValidationError,
)
from screenscope.types import ErrorKind

DEFAULT_RATE_LIMIT_MS = 30_000

# The same request would be rejected again
_REJECTED_REQUEST_STATUSES = frozenset({400, 404, 413, 422})

_MESSAGE_HINTS: list[tuple[tuple[str, ...], ErrorKind]] = [
    (("timed out", "timeout"), ErrorKind.TIMEOUT),
    (("rate limit", "quota", "too many requests"), ErrorKind.RATE_LIMITED),
    (("api key", "api_key", "unauthorized"), ErrorKind.AUTH_INVALID),
    (("network", "connection", "fetch"), ErrorKind.NETWORK),
]


class ErrorClassifier:
    """Pure function object: exception -> AIError with a retryability verdict."""

    def __init__(
        self,
        default_rate_limit_ms: int = DEFAULT_RATE_LIMIT_MS,
        unknown_retryable: bool = True,
    ) -> None:
        self._default_rate_limit_ms = default_rate_limit_ms
        self._unknown_retryable = unknown_retryable

    def __call__(self, exc: BaseException) -> AIError:
        return self.classify(exc)

    def classify(self, exc: BaseException) -> AIError:
        if isinstance(exc, AIError):
            return exc

        # APITimeoutError subclasses APIConnectionError, so it goes first
        if isinstance(exc, openai.APITimeoutError):
            return self._make(ErrorKind.TIMEOUT, f"Request timed out: {exc}", exc)
        if isinstance(exc, openai.APIConnectionError):
            return self._make(ErrorKind.NETWORK, f"Network error: {exc}", exc)
        if isinstance(exc, openai.APIStatusError):
            return self._from_status(exc.status_code, exc, exc.response.headers)

        if isinstance(exc, httpx.TimeoutException):
            return self._make(ErrorKind.TIMEOUT, f"Request timed out: {exc}", exc)
        if isinstance(exc, httpx.TransportError):
            return self._make(ErrorKind.NETWORK, f"Network error: {exc}", exc)
        if isinstance(exc, httpx.HTTPStatusError):
            return self._from_status(exc.response.status_code, exc, exc.response.headers)

        if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
            return self._make(ErrorKind.TIMEOUT, f"Request timed out: {exc}", exc)
        if isinstance(exc, ConnectionError):
            return self._make(ErrorKind.NETWORK, f"Network error: {exc}", exc)

        if isinstance(exc, (ResponseParseError, json.JSONDecodeError)):
            return self._make(ErrorKind.RESPONSE_PARSE, f"Failed to parse response: {exc}", exc)
        if isinstance(exc, (ResponseValidationError, pydantic.ValidationError)):
            return self._make(ErrorKind.VALIDATION, f"Invalid analysis response: {exc}", exc)

        status = _status_of(exc)
        if status is not None:
            return self._from_status(status, exc, _headers_of(exc))

        return self._from_message(exc)

    def _from_status(
        self,
        status: int,
        exc: BaseException,
        headers: Mapping[str, str] | None,
    ) -> AIError:
        if status in (401, 403):
            return self._make(
                ErrorKind.AUTH_INVALID, f"Authentication failed: {exc}", exc, status_code=status
            )
        if status == 429:
            retry_after = parse_retry_after(headers)
            if retry_after is None:
                retry_after = self._default_rate_limit_ms
            return self._make(
                ErrorKind.RATE_LIMITED,
                f"Rate limited: {exc}",
                exc,
                status_code=status,
                retry_after_ms=retry_after,
            )
        if status == 408:
            return self._make(ErrorKind.TIMEOUT, f"Request timed out: {exc}", exc, status_code=status)
        if status >= 500:
            return self._make(
                ErrorKind.UPSTREAM_UNAVAILABLE, f"Server error: {exc}", exc, status_code=status
            )
        if status in _REJECTED_REQUEST_STATUSES:
            return self._make(
                ErrorKind.UNKNOWN,
                f"Request rejected: {exc}",
                exc,
                status_code=status,
                retryable=False,
            )
        return self._make(ErrorKind.UNKNOWN, str(exc), exc, status_code=status)

    def _from_message(self, exc: BaseException) -> AIError:
        text = str(exc).lower()
        for needles, kind in _MESSAGE_HINTS:
            if any(needle in text for needle in needles):
                retry_after = self._default_rate_limit_ms if kind == ErrorKind.RATE_LIMITED else None
                return self._make(kind, str(exc), exc, retry_after_ms=retry_after)
        return self._make(ErrorKind.UNKNOWN, str(exc) or type(exc).__name__, exc)

    def _make(
        self,
        kind: ErrorKind,
        message: str,
        exc: BaseException,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
        retryable: bool | None = None,
    ) -> AIError:
        if retryable is None and kind == ErrorKind.UNKNOWN:
            retryable = self._unknown_retryable
        return AIError(
            kind,
            message,
            retryable=retryable,
            retry_after_ms=retry_after_ms,
            status_code=status_code,
            original=exc,
        )


def parse_retry_after(headers: Mapping[str, str] | None) -> int | None:
    """Read a retry-after hint in milliseconds from response headers."""
    if not headers:
        return None
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        with contextlib.suppress(ValueError):
            return max(0, int(float(raw_ms)))
    raw = headers.get("retry-after")
    if raw:
        with contextlib.suppress(ValueError):
            return max(0, int(float(raw) * 1000))
    return None


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _headers_of(exc: BaseException) -> Mapping[str, str] | None:
    headers: Any = getattr(exc, "headers", None)
    if headers is None:
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None)
    if isinstance(headers, Mapping):
        return {str(k).lower(): str(v) for k, v in headers.items()}
    return None


_default_classifier = ErrorClassifier()


def classify_error(exc: BaseException) -> AIError:
    """Classify with the default policy."""
    return _default_classifier.classify(exc)
