"""Structured output parsing with an explicit fallback per schema."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_CODE_FENCE_PATTERN = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?")


class OutputParseError(ValueError):
    """Raised when completion text does not match the expected schema."""


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```json ... ```) around model output."""
    return _CODE_FENCE_PATTERN.sub("", str(text or "")).strip()


def _reject_constant(name: str) -> Any:
    raise OutputParseError(f"non-finite number {name} in JSON")


def _decode(text: str) -> Any:
    return json.loads(text, parse_constant=_reject_constant)


def _load_json_object(text: str) -> Any:
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise OutputParseError("empty output")
    try:
        return _decode(cleaned)
    except json.JSONDecodeError:
        pass
    # Models sometimes wrap the object in prose; fall back to the outermost braces.
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise OutputParseError("no JSON object found")
    try:
        return _decode(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        raise OutputParseError(f"invalid JSON: {exc.msg}") from exc


class StructuredOutputParser(Generic[ModelT]):
    """Parse completion text into ``schema``; ``fallback(raw_text)`` supplies the safe default."""

    def __init__(self, schema: type[ModelT], fallback: Callable[[str], ModelT]) -> None:
        self.schema = schema
        self.fallback = fallback

    @property
    def name(self) -> str:
        return self.schema.__name__

    def parse_strict(self, text: str) -> ModelT:
        payload = _load_json_object(text)
        if not isinstance(payload, dict):
            raise OutputParseError(f"expected a JSON object, got {type(payload).__name__}")
        try:
            return self.schema.model_validate(payload)
        except ValidationError as exc:
            raise OutputParseError(f"{self.name} validation failed: {exc.error_count()} error(s)") from exc

    def parse(self, text: str) -> tuple[ModelT, bool]:
        """Return ``(record, ok)``; never raises for malformed text."""
        try:
            return self.parse_strict(text), True
        except OutputParseError:
            return self.fallback(str(text or "")), False
