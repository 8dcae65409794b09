"""Recursive subset matcher between observed artifact output and an expected pattern."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

EXISTS_OPERATOR = "$exists"
STARTS_WITH_OPERATOR = "$startsWith:"
CONTAINS_OPERATOR = "$contains:"

# Error text varies with context, so these keys match on substring.
ERROR_KEYS: frozenset[str] = frozenset({"error", "errorMessage"})


class NumericTolerance(BaseModel):
    """Numbers match when ``|actual - expected| <= max(|expected| * relative, absolute)``."""

    relative: float = Field(default=0.2, ge=0.0)
    absolute: float = Field(default=5.0, ge=0.0)

    def allows(self, actual: float, expected: float) -> bool:
        threshold = max(abs(expected) * self.relative, self.absolute)
        return abs(actual - expected) <= threshold


DEFAULT_TOLERANCE = NumericTolerance()


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _match_operator(actual: Mapping[str, Any], key: str, operator: str) -> bool:
    if operator == EXISTS_OPERATOR:
        return key in actual

    value = actual.get(key)
    if operator.startswith(STARTS_WITH_OPERATOR):
        prefix = operator[len(STARTS_WITH_OPERATOR):]
        return isinstance(value, str) and value.startswith(prefix)
    if operator.startswith(CONTAINS_OPERATOR):
        fragment = operator[len(CONTAINS_OPERATOR):]
        return isinstance(value, str) and fragment in value

    # Unknown operators are skipped so newer patterns never fail older matchers.
    return True


def match(
    actual: Any,
    expected: Mapping[str, Any],
    tolerance: NumericTolerance = DEFAULT_TOLERANCE,
) -> bool:
    """
    Return True when ``actual`` satisfies every key of ``expected``.

    Keys absent from ``expected`` are never inspected. Supported pattern values:

    - ``"$exists"``: the key is present, with any value.
    - ``"$startsWith:<prefix>"`` / ``"$contains:<fragment>"``: string tests.
    - numbers: compared within ``tolerance``.
    - ``error`` / ``errorMessage`` strings: expected text is a substring of actual.
    - mappings: matched recursively.
    - anything else: exact equality; a boolean never equals a number.
    """
    if not isinstance(actual, Mapping):
        return False

    for key, expected_value in expected.items():
        actual_value = actual.get(key)

        if isinstance(expected_value, str) and expected_value.startswith("$"):
            if not _match_operator(actual, key, expected_value):
                return False
        elif _is_number(expected_value) and _is_number(actual_value):
            if not tolerance.allows(actual_value, expected_value):
                return False
        elif key in ERROR_KEYS and isinstance(expected_value, str) and isinstance(actual_value, str):
            if expected_value not in actual_value:
                return False
        elif isinstance(expected_value, Mapping):
            if not match(actual_value, expected_value, tolerance):
                return False
        elif isinstance(expected_value, bool) is not isinstance(actual_value, bool):
            return False
        elif actual_value != expected_value or (expected_value is None and key not in actual):
            return False

    return True
