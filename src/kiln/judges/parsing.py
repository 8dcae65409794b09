"""Defensive extraction of JSON values embedded in free-form judge text."""

from __future__ import annotations

import json
import logging
from json import JSONDecodeError
from typing import Any

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}


def _balanced_end(text: str, start: int) -> int | None:
    """Return the index just past the bracket group opened at ``start``, or None."""
    stack: list[str] = []
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
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index + 1
    return None


def extract_json(text: str, opener: str = "{") -> Any | None:
    """
    Return the first balanced ``{...}`` (or ``[...]``) in ``text`` that parses as JSON.

    Markdown fences and surrounding prose are ignored. Never raises on malformed
    input; returns None when nothing parseable is found.
    """
    if opener not in _CLOSERS:
        raise ValueError(f"opener must be one of {sorted(_CLOSERS)}")
    if not text:
        return None

    position = text.find(opener)
    while position != -1:
        end = _balanced_end(text, position)
        if end is not None:
            try:
                return json.loads(text[position:end])
            except JSONDecodeError:
                logger.debug("Balanced candidate at %d is not valid JSON", position)
        position = text.find(opener, position + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    value = extract_json(text, "{")
    return value if isinstance(value, dict) else None


def extract_json_array(text: str) -> list[Any] | None:
    value = extract_json(text, "[")
    return value if isinstance(value, list) else None
