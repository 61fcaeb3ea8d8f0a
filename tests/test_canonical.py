"""
Canonical JSON and timestamp formatting tests.

Every digest depends on this representation, so these cases pin it.
"""

from datetime import datetime, timedelta, timezone

import pytest

from proofchain_kernel import LogLevel, ProofType, canonical_json, canonicalize
from proofchain_kernel.canonical import format_timestamp, parse_timestamp, utc_now


class TestCanonicalJson:
    """Test canonical JSON serialization."""

    def test_sorted_keys(self):
        """Object keys must be sorted by Unicode code point."""
        assert canonical_json({"z": 1, "a": 2, "m": 3}) == '{"a":2,"m":3,"z":1}'

    def test_no_whitespace(self):
        """No whitespace between tokens."""
        assert canonical_json({"key": [1, 2, 3]}) == '{"key":[1,2,3]}'

    def test_nested_sorting(self):
        """Nested objects must also have sorted keys."""
        assert canonical_json({"outer": {"z": 1, "a": 2}}) == '{"outer":{"a":2,"z":1}}'

    def test_null_and_booleans(self):
        assert canonical_json({"key": None}) == '{"key":null}'
        assert canonical_json(True) == "true"
        assert canonical_json(False) == "false"

    def test_numbers(self):
        """Integral floats drop the decimal point."""
        assert canonical_json(42) == "42"
        assert canonical_json(-17) == "-17"
        assert canonical_json(3.14) == "3.14"
        assert canonical_json(1.0) == "1"

    def test_string_escaping(self):
        assert canonical_json("hello\nworld") == '"hello\\nworld"'
        assert canonical_json("π") == '"π"'

    def test_tuples_serialize_as_arrays(self):
        assert canonical_json((1, "a")) == '[1,"a"]'

    def test_enums_serialize_as_values(self):
        assert canonical_json({"t": ProofType.AXIOM, "l": LogLevel.PROOF}) == '{"l":4,"t":"AXIOM"}'

    def test_datetime_serializes_as_iso(self):
        ts = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)
        assert canonical_json(ts) == '"2024-05-06T07:08:09.123Z"'

    def test_rejects_unknown_types(self):
        with pytest.raises(TypeError):
            canonical_json({"s": {1, 2}})

    def test_rejects_non_string_keys(self):
        with pytest.raises(TypeError):
            canonical_json({1: "a"})

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            canonical_json(float("nan"))

    def test_canonicalize_normalizes(self):
        assert canonicalize({"b": (1, 2), "a": 1.0}) == {"a": 1, "b": [1, 2]}
        assert canonicalize(None) is None


class TestTimestamps:
    def test_format_is_millisecond_utc(self):
        ts = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert format_timestamp(ts) == "2024-01-01T00:00:00.000Z"

    def test_format_converts_to_utc(self):
        ts = datetime(2024, 1, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(ts) == "2024-01-01T00:00:00.000Z"

    def test_parse_round_trip(self):
        text = "2024-03-04T05:06:07.890Z"
        assert format_timestamp(parse_timestamp(text)) == text

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_utc_now_is_millisecond_precision(self):
        now = utc_now()
        assert now.microsecond % 1000 == 0
        assert now.tzinfo is not None
