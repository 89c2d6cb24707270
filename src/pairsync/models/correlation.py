"""Correlation pair model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from pairsync.ingestion.normalize import safe_bool
from pairsync.models._base import (
    EpochTimestamp,
    LenientFloat,
    LenientInt,
    OptionalFloat,
    PairsyncBaseModel,
    Text,
)


class CorrelationPair(PairsyncBaseModel):
    """A candidate asset pair from the bot's correlation analysis.

    Document ids have the form ``"ASSET1_ASSET2"``.
    """

    id: Text = ""
    pair_a: Text = Field(default="", validation_alias=AliasChoices("pairA", "pair_a", "asset1", "symbolA"))
    pair_b: Text = Field(default="", validation_alias=AliasChoices("pairB", "pair_b", "asset2", "symbolB"))
    correlation: LenientFloat = Field(
        default=0.0,
        validation_alias=AliasChoices("correlation", "correlationCoefficient", "correlation_coefficient"),
    )
    correlation_coefficient: OptionalFloat = None
    data_points: LenientInt = 0
    lookback_period: str = ""
    spread_mean: OptionalFloat = None
    spread_std: OptionalFloat = None
    spread_z_score: OptionalFloat = Field(
        default=None,
        validation_alias=AliasChoices("spreadZScore", "spread_z_score", "zScore"),
    )
    p_value: OptionalFloat = None
    half_life: OptionalFloat = None
    cointegrated: bool = False
    regression_coefficient: OptionalFloat = None
    timestamp: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdated", "last_updated", "timestamp", "updatedAt"),
    )
    """When the pair statistics were last recomputed."""

    @property
    def regression_formula(self) -> str | None:
        """Display string ``"A = beta × B"`` when a hedge ratio is known."""
        if self.regression_coefficient is None:
            return None
        return f"{self.pair_a} = {self.regression_coefficient:.4f} × {self.pair_b}"

    @field_validator("cointegrated", mode="before")
    @classmethod
    def _coerce_cointegrated(cls, value: Any) -> bool:
        return bool(safe_bool(value))

    @field_validator("lookback_period", mode="before")
    @classmethod
    def _coerce_lookback(cls, value: Any) -> str:
        return str(value).strip()

    @model_validator(mode="after")
    def _fill_missing_id(self) -> CorrelationPair:
        if self.id or not (self.pair_a and self.pair_b):
            return self
        return self.model_copy(update={"id": f"{self.pair_a}_{self.pair_b}"})


def sort_pairs(pairs: list[CorrelationPair]) -> list[CorrelationPair]:
    """Cointegrated pairs first, then by correlation (descending)."""
    return sorted(pairs, key=lambda pair: (not pair.cointegrated, -pair.correlation))
