"""Comparator - normalizes and compares probed values against expectations."""
import json
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional


class _Undefined:
    """Marker for a value that is absent, as opposed to JSON null."""

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()

# Recorded form of an absent value
UNDEFINED_MARKER = "__UNDEFINED__"

DEFAULT_MISMATCH_ERROR = "Probe value mismatch"

_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


@dataclass
class ComparisonResult:
    """Outcome of comparing an actual value with an expected literal."""
    ok: bool
    matched_value: Optional[str] = None
    error: Optional[str] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def normalize_comparable(value: Any) -> Optional[str]:
    """Render a probed value as the string recorded on the check run."""
    if value is UNDEFINED:
        return UNDEFINED_MARKER
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (dict, list, tuple, bool)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def deep_equal(left: Any, right: Any) -> bool:
    """Strict structural equality.

    Objects and arrays compare by canonical JSON form, primitives by value
    without cross-type coercion (``"5"`` never equals ``5``, ``True`` never
    equals ``1``).
    """
    if isinstance(left, (dict, list, tuple)) and isinstance(right, (dict, list, tuple)):
        return _canonical_json(left) == _canonical_json(right)
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def parse_expected_value(raw_value: Any) -> Any:
    """Parse an operator-supplied expected value.

    JSON literals are decoded (``"5"`` -> 5, ``'"ok"'`` -> "ok"); anything
    that is not valid JSON is taken as the trimmed string itself.
    """
    if raw_value is None:
        return None
    trimmed = str(raw_value).strip()
    if trimmed == "":
        return ""
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        return trimmed


def resolve_json_path(data: Any, path: Optional[str]) -> Any:
    """Resolve a dotted/bracketed path such as ``data.items[0].status``.

    Returns ``UNDEFINED`` when any segment is missing.
    """
    if not path:
        return UNDEFINED

    current = data
    for match in _PATH_TOKEN.finditer(path):
        key, index = match.group(1), match.group(2)
        if isinstance(current, dict):
            current = current.get(key if key is not None else index, UNDEFINED)
        elif isinstance(current, list):
            position = key if key is not None else index
            if not position.isdigit() or int(position) >= len(current):
                return UNDEFINED
            current = current[int(position)]
        else:
            return UNDEFINED
    return current


def compare(
    actual: Any,
    expected_raw: Any,
    mismatch_error: str = DEFAULT_MISMATCH_ERROR,
) -> ComparisonResult:
    """Compare ``actual`` with the expected literal ``expected_raw``.

    An absent or blank expectation always succeeds: the value is recorded but
    not validated.
    """
    matched = normalize_comparable(actual)
    if expected_raw is None or str(expected_raw).strip() == "":
        return ComparisonResult(ok=True, matched_value=matched)

    ok = deep_equal(actual, parse_expected_value(expected_raw))
    return ComparisonResult(
        ok=ok,
        matched_value=matched,
        error=None if ok else mismatch_error,
    )
