from __future__ import annotations

import math
from datetime import UTC, datetime

from pairsync.ingestion.normalize import (
    decimal_text,
    first_present,
    is_meaningful,
    normalize_status,
    normalize_timestamp_seconds,
    safe_bool,
    safe_float,
    strip_sentinels,
    to_datetime,
)


def test_placeholders_are_not_meaningful() -> None:
    for value in (None, "", "  ", "--", "NaN", "null", "undefined", {}, [], math.nan):
        assert not is_meaningful(value)
    for value in (0, False, "0", "x", [1], {"a": 1}):
        assert is_meaningful(value)


def test_first_present_prefers_earlier_keys() -> None:
    assert first_present({"entryPrice": "101.5", "executedPrice": "99"}, "entryPrice", "executedPrice") == "101.5"
    assert first_present({"entryPrice": "", "executedPrice": "99"}, "entryPrice", "executedPrice") == "99"
    assert first_present({}, "entryPrice", "executedPrice") is None


def test_numeric_parsing_is_lenient() -> None:
    assert safe_float("1.25") == 1.25
    assert safe_float("abc") is None
    assert safe_float(True) is None
    assert safe_float(float("inf")) is None
    assert safe_bool("TRUE") is True
    assert safe_bool(0) is False
    assert safe_bool("maybe") is None


def test_decimal_text_keeps_strings_and_renders_numbers() -> None:
    assert decimal_text("0.00012345") == "0.00012345"
    assert decimal_text(42) == "42"
    assert decimal_text(42.0) == "42"
    assert decimal_text(0.5) == "0.5"
    assert decimal_text(None) == "0"
    assert decimal_text("--", default="n/a") == "n/a"


def test_normalize_status() -> None:
    assert normalize_status(" OPEN ") == "open"
    assert normalize_status(None) == "unknown"


def test_timestamps_in_seconds_milliseconds_iso_and_store_objects() -> None:
    expected = 1_700_000_000.0
    assert normalize_timestamp_seconds(1_700_000_000) == expected
    assert normalize_timestamp_seconds(1_700_000_000_000) == expected
    assert normalize_timestamp_seconds("1700000000000") == expected
    assert normalize_timestamp_seconds("2023-11-14T22:13:20Z") == expected
    assert normalize_timestamp_seconds({"seconds": 1_700_000_000, "nanoseconds": 500_000_000}) == expected + 0.5
    assert normalize_timestamp_seconds({"_seconds": 1_700_000_000}) == expected
    assert normalize_timestamp_seconds(0) is None
    assert normalize_timestamp_seconds("not a date") is None


def test_to_datetime_is_utc() -> None:
    assert to_datetime(1_700_000_000) == datetime.fromtimestamp(1_700_000_000, tz=UTC)
    assert to_datetime(None) is None


def test_out_of_range_timestamps_are_missing() -> None:
    assert to_datetime(9e16) is None
    assert to_datetime(1e300) is None
    assert to_datetime("9e16") is None


def test_strip_sentinels_only_drops_placeholders() -> None:
    assert strip_sentinels({"a": "--", "b": 0, "c": None, "d": "x"}) == {"b": 0, "d": "x"}
