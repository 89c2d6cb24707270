"""Bot event model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pairsync.models._base import EpochTimestamp, PairsyncBaseModel, Text


class BotEvent(PairsyncBaseModel):
    """An entry in the bot's event log.

    Legacy documents carry the event kind as ``eventType`` instead of
    ``type``; both resolve to :attr:`type`.
    """

    id: Text = ""
    timestamp: EpochTimestamp = None
    type: Text = Field(default="unknown", validation_alias=AliasChoices("type", "eventType", "event_type"))
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: EpochTimestamp = None

    @property
    def event_type(self) -> str:
        return self.type

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> str:
        return str(value)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> dict[str, Any]:
        return dict(value) if isinstance(value, dict) else {}
