"""Custom exception hierarchy for screenscope."""

from __future__ import annotations

from typing import Any

from screenscope.types import ErrorKind

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH_INVALID: "The AI provider API key is missing or invalid. Please check your settings.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.TIMEOUT: "The analysis took too long. Please try again with fewer screenshots.",
    ErrorKind.NETWORK: "Network connection failed. Please check your internet connection.",
    ErrorKind.RESPONSE_PARSE: "Failed to parse the analysis response. Please try again.",
    ErrorKind.VALIDATION: "The analysis response was invalid. Please try again.",
    ErrorKind.UPSTREAM_UNAVAILABLE: "The AI service is temporarily unavailable. Please try again shortly.",
    ErrorKind.UNKNOWN: "An unexpected error occurred. Please try again.",
}


class ScreenscopeError(Exception):
    """Base exception for all screenscope errors."""

    code = "SCREENSCOPE_ERROR"
    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
        }


class AIError(ScreenscopeError):
    """A classified failure of the external AI call.

    ``retryable`` defaults to True for every kind except AUTH_INVALID.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        user_message: str | None = None,
        retryable: bool | None = None,
        retry_after_ms: int | None = None,
        status_code: int | None = None,
        attempts: int = 1,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message, user_message or _USER_MESSAGES[kind])
        self.kind = kind
        self.retryable = kind != ErrorKind.AUTH_INVALID if retryable is None else retryable
        self.retry_after_ms = retry_after_ms
        self.status_code = status_code
        self.attempts = attempts
        self.original = original

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        payload["attempts"] = self.attempts
        if self.retry_after_ms is not None:
            payload["retry_after_ms"] = self.retry_after_ms
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload

    def __repr__(self) -> str:
        return (
            f"AIError(kind={self.kind.value}, retryable={self.retryable}, "
            f"attempts={self.attempts}, message={self.message!r})"
        )


class FetchError(ScreenscopeError):
    """A source item could not be read, so no checksum or cache decision is possible."""

    code = "FETCH_ERROR"
    default_user_message = "Failed to load one or more screenshots. Please check the image URLs."

    def __init__(
        self,
        message: str = "",
        url: str = "",
        item_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.item_id = item_id
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["url"] = self.url
        if self.item_id is not None:
            payload["item_id"] = self.item_id
        return payload


class StorageError(ScreenscopeError):
    """The cache store failed to read or write."""

    code = "STORAGE_ERROR"
    default_user_message = "The analysis cache is unavailable."


class InvalidRequestError(ScreenscopeError):
    """The request cannot be served as given (no items, no API key)."""

    code = "INVALID_REQUEST"
    default_user_message = "The analysis request is invalid."


class ResponseParseError(ScreenscopeError):
    """The AI response body is not parseable JSON."""

    code = "RESPONSE_PARSE"


class ResponseValidationError(ScreenscopeError):
    """The AI response parsed but does not match the analysis schema."""

    code = "VALIDATION"

    def __init__(self, message: str = "", issues: list[str] | None = None) -> None:
        super().__init__(message)
        self.issues = issues or []
