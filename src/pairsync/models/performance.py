"""Performance history models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from pairsync.models._base import EpochTimestamp, LenientFloat, LenientInt, OptionalFloat, PairsyncBaseModel


class PerformancePoint(PairsyncBaseModel):
    """One point of the balance/PnL chart."""

    date: str = ""
    """Display date (``YYYY-MM-DD``)."""
    value: LenientFloat = 0.0
    actual_value: OptionalFloat = None
    """Absolute balance when :attr:`value` is relative to a baseline."""
    timestamp: EpochTimestamp = None

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> str:
        return str(value).strip()


class PerformanceSummary(PairsyncBaseModel):
    """Aggregate trading performance derived from closed trades."""

    total_pnl: LenientFloat = 0.0
    daily_pnl: LenientFloat = 0.0
    win_rate: LenientFloat = 0.0
    profitable_trades: LenientInt = 0
    total_trades: LenientInt = 0
    pnl_history: list[PerformancePoint] = Field(default_factory=list)
