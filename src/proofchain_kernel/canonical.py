"""
Canonical JSON serialization (RFC 8785 style) and timestamp formatting.

Every digest in proofchain-kernel is computed over the UTF-8 bytes of this
representation, so two structurally equal values always hash the same no
matter how their keys were ordered.

Rules:
- Object keys sorted lexicographically by Unicode code point
- No whitespace between tokens
- Numbers: shortest round-trip representation, integral floats without ".0"
- Strings: minimal escaping (control chars, backslash, double-quote)
- null, true, false as literals
- Enum members serialize as their value, datetimes as ISO-8601 UTC with
  millisecond precision
"""

import json
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def format_timestamp(ts: datetime) -> str:
    """
    Format a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    Naive datetimes are taken to be UTC.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    """
    Parse an ISO-8601 timestamp produced by :func:`format_timestamp`.

    Raises:
        ValueError: if ``text`` is not a valid ISO-8601 timestamp
    """
    if not isinstance(text, str):
        raise ValueError(f"timestamp must be a string, got {type(text).__name__}")
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def canonical_json(value: Any) -> str:
    """
    Serialize a value to canonical JSON.

    Args:
        value: A JSON-compatible value (dicts with string keys, lists,
            tuples, strings, numbers, booleans, None, Enum members,
            datetimes)

    Returns:
        Canonical JSON string with sorted keys and no whitespace

    Raises:
        TypeError: if the value contains something with no canonical form
        ValueError: if the value contains NaN or infinity
    """
    return _serialize_value(value)


def canonicalize(value: Any) -> Any:
    """
    Normalize a value to the plain JSON structure its canonical form decodes to.

    Tuples become lists, Enum members their values, datetimes strings.
    """
    if value is None:
        return None
    return json.loads(canonical_json(value))


def _serialize_value(value: Any) -> str:
    if value is None:
        return "null"

    # bool is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"

    if isinstance(value, Enum):
        return _serialize_value(value.value)

    if isinstance(value, (int, float)):
        return _serialize_number(value)

    if isinstance(value, str):
        return _serialize_string(value)

    if isinstance(value, datetime):
        return _serialize_string(format_timestamp(value))

    if isinstance(value, (list, tuple)):
        return _serialize_array(value)

    if isinstance(value, dict):
        return _serialize_object(value)

    raise TypeError(f"Value of type {type(value).__name__} has no canonical JSON form")


def _serialize_number(num: float | int) -> str:
    if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
        raise ValueError("NaN and infinity have no canonical JSON form")

    if isinstance(num, int) or num.is_integer():
        int_val = int(num)
        if abs(int_val) < 10**20:
            return str(int_val)

    result = json.dumps(num)
    if result.endswith(".0"):
        result = result[:-2]
    return result


def _serialize_string(text: str) -> str:
    return json.dumps(str(text), ensure_ascii=False)


def _serialize_array(arr: list | tuple) -> str:
    return "[" + ",".join(_serialize_value(item) for item in arr) + "]"


def _serialize_object(obj: dict) -> str:
    for key in obj:
        if not isinstance(key, str):
            raise TypeError(f"Object keys must be strings, got {type(key).__name__}")

    pairs = [
        _serialize_string(key) + ":" + _serialize_value(obj[key])
        for key in sorted(obj.keys())
    ]
    return "{" + ",".join(pairs) + "}"
