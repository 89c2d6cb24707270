"""Account metrics model."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from pairsync.models._base import (
    EpochTimestamp,
    LenientFloat,
    OptionalFloat,
    OptionalInt,
    PairsyncBaseModel,
    Text,
)


class AccountSummary(PairsyncBaseModel):
    """Balance snapshot written by the bot after each trading cycle.

    Fields are mapped from the ``accountMetrics`` documents; the API's
    ``/account-metrics`` response uses the same camelCase names.
    """

    id: Text = "latest"
    timestamp: EpochTimestamp = None
    total_balance: LenientFloat = Field(
        default=0.0,
        validation_alias=AliasChoices("totalBalance", "total_balance", "accountValue", "balance"),
    )
    """Account equity in quote currency."""
    available_margin: LenientFloat = Field(
        default=0.0,
        validation_alias=AliasChoices("availableMargin", "available_margin", "withdrawable"),
    )
    daily_pnl: LenientFloat = 0.0
    total_pnl: OptionalFloat = None
    win_rate: OptionalFloat = None
    """Fraction of closed trades with positive PnL (``0.0``-``1.0``)."""
    profitable_trades: OptionalInt = None
    total_trades: OptionalInt = None
    created_at: EpochTimestamp = None
    updated_at: EpochTimestamp = None
