"""Trade model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from pairsync._constants import OPEN_TRADE_STATUSES
from pairsync.ingestion.normalize import normalize_timestamp_seconds, safe_float, safe_str
from pairsync.models._base import (
    DecimalText,
    EpochTimestamp,
    LenientFloat,
    LowerText,
    OptionalDecimalText,
    OptionalFloat,
    OptionalText,
    PairsyncBaseModel,
    Text,
)


class CorrelatedLeg(PairsyncBaseModel):
    """The other leg of a pair trade."""

    symbol: Text = "Unknown"
    correlation: OptionalFloat = None
    side: OptionalText = None
    id: OptionalText = None


class Trade(PairsyncBaseModel):
    """A position opened by the bot.

    Older documents store the fill price as ``executedPrice`` and the
    size as ``executedSize``; newer ones use ``entryPrice`` and ``size``.
    The newer, more specific field wins when both are present.
    """

    id: Text = ""
    timestamp: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "openedAt", "createdAt"),
    )
    """When the position was opened."""
    symbol: Text = "Unknown"
    side: LowerText = "unknown"
    """``long`` / ``short`` (lower-cased)."""
    entry_price: DecimalText = Field(
        default="0",
        validation_alias=AliasChoices("entryPrice", "entry_price", "executedPrice", "executed_price"),
    )
    size: DecimalText = Field(
        default="0",
        validation_alias=AliasChoices("size", "executedSize", "executed_size"),
    )
    leverage: LenientFloat = 1.0
    order_id: str = ""
    status: LowerText = "unknown"
    trade_type: str = Field(default="", validation_alias=AliasChoices("type", "tradeType", "trade_type"))
    wallet_address: str = ""
    pnl: DecimalText = Field(default="0", validation_alias=AliasChoices("pnl", "finalPnl", "final_pnl"))
    exit_price: OptionalDecimalText = None
    closed_at: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("closedAt", "closed_at", "exitTimestamp", "exit_timestamp"),
    )
    stop_loss: OptionalDecimalText = None
    take_profit: OptionalDecimalText = None
    correlated_pair: CorrelatedLeg | None = None
    pair_trade_id: OptionalText = None
    close_order_id: OptionalText = None
    close_reason: OptionalText = None
    updated_at: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("updatedAt", "updated_at", "lastUpdated", "last_updated"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TRADE_STATUSES

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    @property
    def pnl_value(self) -> float:
        """PnL as a number (``0.0`` when unparseable)."""
        return safe_float(self.pnl) or 0.0

    def matches_status(self, status: str | None) -> bool:
        """Case-insensitive status match; ``open`` also matches ``active``."""
        if not status:
            return True
        wanted = status.strip().lower()
        if wanted == "open":
            return self.is_open
        return self.status == wanted

    @field_validator("correlated_pair", mode="before")
    @classmethod
    def _coerce_leg(cls, value: Any) -> Any:
        # Some bot versions store only the partner symbol.
        if isinstance(value, str):
            symbol = safe_str(value)
            return {"symbol": symbol} if symbol else None
        return value

    @field_validator("order_id", "wallet_address", "trade_type", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return safe_str(value) or ""

    @model_validator(mode="after")
    def _fill_missing_id(self) -> Trade:
        if self.id:
            return self
        # Stable fallback so repeated reads of the same record agree.
        ts = normalize_timestamp_seconds(self.timestamp)
        stamp = str(int(ts * 1000)) if ts is not None else "0"
        fallback = self.order_id or f"trade-{self.symbol}-{self.side}-{stamp}"
        return self.model_copy(update={"id": fallback})
