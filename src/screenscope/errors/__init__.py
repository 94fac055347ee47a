"""Error handling: exceptions and failure classification."""

from screenscope.errors.classifier import ErrorClassifier, classify_error
from screenscope.errors.exceptions import (
    AIError,
    FetchError,
    InvalidRequestError,
    ResponseParseError,
    ResponseValidationError,
    ScreenscopeError,
    StorageError,
)

__all__ = [
    "ScreenscopeError",
    "AIError",
    "FetchError",
    "StorageError",
    "InvalidRequestError",
    "ResponseParseError",
    "ResponseValidationError",
    "ErrorClassifier",
    "classify_error",
]
