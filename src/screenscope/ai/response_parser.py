"""Parse model output into validated analysis, comparison and summary models."""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from screenscope.errors.exceptions import ResponseParseError, ResponseValidationError
from screenscope.models.analysis import AppAnalysis
from screenscope.models.comparison import AppComparison, AppSummary

_M = TypeVar("_M", bound=BaseModel)

# Body of a ```json ... ``` (or bare ```) fence
_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def extract_json(raw_text: str) -> Any:
    """Decode the JSON payload of a response, unwrapping a code fence if present."""
    text = raw_text.strip()
    if not text:
        raise ResponseParseError("Empty response from model")

    match = _FENCE_PATTERN.search(text)
    if match:
        text = match.group(1)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Failed to parse JSON response: {e}") from e


def parse_analysis(raw_text: str) -> AppAnalysis:
    """Parse and validate an analysis response.

    Raises ``ResponseParseError`` when no JSON can be decoded and
    ``ResponseValidationError`` when the JSON does not fit the schema.
    """
    return _validate(AppAnalysis, extract_json(raw_text), "analysis")


def parse_comparison(raw_text: str) -> AppComparison:
    """Parse and validate a comparison response."""
    return _validate(AppComparison, extract_json(raw_text), "comparison")


def parse_summary(raw_text: str) -> AppSummary:
    """Take a plain-text summary, unwrapping a stray code fence."""
    text = raw_text.strip()
    match = _FENCE_PATTERN.search(text)
    if match:
        text = match.group(1).strip()
    if not text:
        raise ResponseParseError("Empty summary from model")
    return AppSummary(summary=text)


def _validate(model: type[_M], payload: Any, label: str) -> _M:
    if not isinstance(payload, dict):
        raise ResponseValidationError(
            f"Invalid {label} response: expected a JSON object",
            issues=[f"<root>: expected object, got {type(payload).__name__}"],
        )

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        issues = [_format_issue(err) for err in e.errors()]
        raise ResponseValidationError(
            f"Invalid {label} response: {', '.join(issues)}",
            issues=issues,
        ) from e


def _format_issue(err: dict) -> str:
    path = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
    return f"{path}: {err.get('msg', 'invalid')}"
