"""Normalization helpers.

Centralizes defensive parsing and placeholder handling for documents
coming from either the bot API or the live store.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

# Placeholder strings some bot versions write for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null", "undefined"})

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1e11


def is_meaningful(value: Any) -> bool:
    """Return True if *value* carries data (not a placeholder)."""
    if value is None:
        return False
    if isinstance(value, str) and value.strip() in _SENTINELS:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if value == {}:
        return False
    return bool(value != [])


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first meaningful value among *keys*, in order.

    Callers list the more specific field first so that, when a document
    carries both spellings, the resolution is deterministic.
    """
    for key in keys:
        value = data.get(key)
        if is_meaningful(value):
            return value
    return None


def safe_float(value: Any) -> float | None:
    if not is_meaningful(value) or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if not is_meaningful(value):
        return None
    text = str(value).strip()
    return text if text else None


def safe_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
        return None
    parsed = safe_int(value)
    if parsed is None:
        return None
    return parsed != 0


def decimal_text(value: Any, default: str = "0") -> str:
    """Render a price/size/PnL value as text, keeping the source precision.

    The bot stores decimals as strings; numbers from the live store are
    rendered without float noise where possible.
    """
    if not is_meaningful(value) or isinstance(value, bool):
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    parsed = safe_float(value)
    if parsed is None:
        return default
    if parsed.is_integer():
        return str(int(parsed))
    return repr(parsed)


def normalize_status(value: Any, default: str = "unknown") -> str:
    text = safe_str(value)
    return text.lower() if text else default


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize a timestamp to epoch seconds.

    Accepts epoch seconds or milliseconds, ISO-8601 strings, datetimes,
    and store timestamp objects (``{"seconds": ..., "nanoseconds": ...}``
    or the ``_seconds`` export spelling).

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.timestamp()
    if isinstance(value, Mapping):
        seconds = safe_float(first_present(value, "seconds", "_seconds"))
        if seconds is None:
            return None
        nanos = safe_float(first_present(value, "nanoseconds", "_nanoseconds")) or 0.0
        return seconds + nanos / 1e9 if seconds > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text and not _looks_numeric(text):
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            return normalize_timestamp_seconds(parsed)
    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > _MS_THRESHOLD:
        ts /= 1000.0
    return ts


def _looks_numeric(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def to_datetime(value: Any) -> datetime | None:
    """Convert any supported timestamp representation to a UTC datetime."""
    seconds = normalize_timestamp_seconds(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, ValueError, OSError):
        # outside the platform time_t range; treated as missing
        return None


def strip_sentinels(values: Mapping[str, Any]) -> dict[str, Any]:
    """Drop top-level placeholder values so model defaults apply."""
    return {key: value for key, value in values.items() if is_meaningful(value)}
