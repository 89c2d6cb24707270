"""Dashboard aggregate models."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pairsync.models._base import EpochTimestamp, OptionalFloat, OptionalText, PairsyncBaseModel
from pairsync.models.account import AccountSummary
from pairsync.models.bot_event import BotEvent
from pairsync.models.correlation import CorrelationPair
from pairsync.models.performance import PerformanceSummary
from pairsync.models.trade import Trade


class RiskMetrics(PairsyncBaseModel):
    total_balance: OptionalFloat = None
    available_margin: OptionalFloat = None
    current_risk_percent: OptionalFloat = None


class BotHealth(PairsyncBaseModel):
    """Response of the bot's health check."""

    status: str = "unknown"
    timestamp: EpochTimestamp = None
    version: OptionalText = None
    uptime: OptionalFloat = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return str(value).strip().lower()

    @property
    def is_healthy(self) -> bool:
        return self.status in {"ok", "healthy", "up"}


class DashboardData(PairsyncBaseModel):
    """Everything the overview page shows, in one snapshot."""

    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    bot_events: list[BotEvent] = Field(default_factory=list)
    active_trades: list[Trade] = Field(default_factory=list)
    correlated_pairs: list[CorrelationPair] = Field(
        default_factory=list,
        validation_alias=AliasChoices("correlatedPairs", "correlated_pairs", "correlationPairs"),
    )
    risk_metrics: RiskMetrics = Field(default_factory=RiskMetrics)
    account_metrics: AccountSummary | None = None
    wallet_address: OptionalText = None
    timestamp: EpochTimestamp = None
    api_errors: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("api_errors", mode="before")
    @classmethod
    def _coerce_api_errors(cls, value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]
