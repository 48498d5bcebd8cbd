"""Shared parsing helpers for configuration and service output normalization."""

from __future__ import annotations

import json
from typing import Any


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def find_first_json_object(text: str) -> str | None:
    """Return the first balanced `{...}` span in `text`, or `None` when absent.

    Braces inside JSON string literals (including escaped quotes) do not count
    toward nesting, so prose, code fences, or trailing commentary around the
    object are ignored.
    """

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            character = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif character == "\\":
                    escaped = True
                elif character == '"':
                    in_string = False
                continue
            if character == '"':
                in_string = True
            elif character == "{":
                depth += 1
            elif character == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def decode_first_json_object(text: str) -> dict[str, Any] | None:
    """Decode the first balanced JSON object that parses to a mapping."""

    remaining = text
    while True:
        candidate = find_first_json_object(remaining)
        if candidate is None:
            return None
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            offset = remaining.find(candidate) + 1
            remaining = remaining[offset:]
            continue
        if isinstance(payload, dict):
            return payload
        return None
