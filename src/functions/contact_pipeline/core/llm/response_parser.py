"""Strict parsing of JSON-shaped model output into typed payloads.

Model replies sometimes wrap the JSON object in markdown fences or add a
sentence around it. The parser accepts exactly one top-level object,
validates it against a pydantic model, and reports any mismatch as a
``ParseOutcome`` failure instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass(slots=True)
class ParseOutcome(Generic[ModelT]):
    value: Optional[ModelT] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def _extract_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block, honouring JSON strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def parse_json_payload(text: Optional[str], model: Type[ModelT]) -> ParseOutcome[ModelT]:
    """Validate a model reply against ``model``.

    Args:
        text: Raw reply text (may be None or empty)
        model: Pydantic model describing the expected object

    Returns:
        ParseOutcome with ``value`` set on success, ``error`` otherwise
    """
    if not text or not text.strip():
        return ParseOutcome(error="empty response")

    candidate = _extract_object(_strip_fences(text.strip()))
    if candidate is None:
        return ParseOutcome(error="no JSON object in response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseOutcome(error=f"invalid JSON: {exc.msg}")

    if not isinstance(data, dict):
        return ParseOutcome(error="response JSON is not an object")

    try:
        return ParseOutcome(value=model.model_validate(data))
    except ValidationError as exc:
        logger.debug("Payload failed %s validation: %s", model.__name__, exc)
        return ParseOutcome(error=f"schema mismatch: {exc.error_count()} error(s)")
