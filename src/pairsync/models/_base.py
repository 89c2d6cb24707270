"""Base model and annotated field types for bot records.

Every entity model inherits from :class:`PairsyncBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase document keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips placeholder values
  (``None``, ``""``, ``"--"``, NaN) so the field default is used and an
  alternate spelling further down an ``AliasChoices`` list can win.
* A ``raw`` dict that captures the original document.

The annotated types below coerce the heterogeneous representations the
API and the live store use for the same field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pairsync.ingestion.normalize import (
    decimal_text,
    normalize_status,
    safe_float,
    safe_int,
    safe_str,
    strip_sentinels,
    to_datetime,
)


def _optional_decimal_text(value: Any) -> str | None:
    text = decimal_text(value, default="")
    return text or None


def _float_or_zero(value: Any) -> float:
    parsed = safe_float(value)
    return 0.0 if parsed is None else parsed


def _int_or_zero(value: Any) -> int:
    parsed = safe_int(value)
    return 0 if parsed is None else parsed


def _text(value: Any) -> str:
    return str(value).strip()


EpochTimestamp = Annotated[datetime | None, BeforeValidator(to_datetime)]
"""Epoch seconds/milliseconds, ISO strings or store timestamp objects as a UTC datetime."""

DecimalText = Annotated[str, BeforeValidator(decimal_text)]
"""Price/size/PnL rendered as text; the field default applies when missing."""

OptionalDecimalText = Annotated[str | None, BeforeValidator(_optional_decimal_text)]

LowerText = Annotated[str, BeforeValidator(normalize_status)]
"""Lower-cased status/side text."""

Text = Annotated[str, BeforeValidator(_text)]
OptionalText = Annotated[str | None, BeforeValidator(safe_str)]

LenientFloat = Annotated[float, BeforeValidator(_float_or_zero)]
OptionalFloat = Annotated[float | None, BeforeValidator(safe_float)]
LenientInt = Annotated[int, BeforeValidator(_int_or_zero)]
OptionalInt = Annotated[int | None, BeforeValidator(safe_int)]


def flatten_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Turn a live store document ``{"id", "data"}`` into a flat record.

    Plain records (API responses) are returned unchanged. The document id
    takes precedence over an ``id`` key inside the data.
    """
    data = doc.get("data")
    if "id" in doc and isinstance(data, dict) and set(doc) <= {"id", "data"}:
        return {**data, "id": doc["id"]}
    return dict(doc)


class PairsyncBaseModel(BaseModel):
    """Base for normalized bot records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original document as received."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip placeholder values and stash the raw document."""
        if not isinstance(values, dict):
            return values
        original = flatten_document(values)
        cleaned = strip_sentinels(original)
        # Only auto-stash raw when not explicitly provided.
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned
