"""Position reconciliation models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pairsync.models._base import EpochTimestamp, LenientInt, PairsyncBaseModel


class SyncPhase(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class SyncStatus(BaseModel):
    """Locally known reconciliation state between the bot's positions and the exchange ledger.

    A single instance is owned by :class:`pairsync.state.machine.SyncStateMachine`
    and replaced (never mutated) on every transition.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    phase: SyncPhase = SyncPhase.IDLE
    is_in_sync: bool = True
    last_synced: datetime | None = None
    sync_actions: int = 0
    loading: bool = False
    error: Exception | None = None


class SyncResult(PairsyncBaseModel):
    """Outcome of a reconciliation request.

    Transport failures produce ``status="error"`` instead of raising.
    """

    status: str = "ok"
    message: str = ""
    sync_actions: LenientInt = Field(default=0, validation_alias=AliasChoices("syncActions", "sync_actions", "actions"))
    timestamp: EpochTimestamp = None

    @property
    def ok(self) -> bool:
        return self.status not in {"error", "failed"}

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return str(value).strip().lower()

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> str:
        return str(value)


class RemoteSyncStatus(PairsyncBaseModel):
    """Reconciliation status as reported by the bot's ``/sync-status`` endpoint."""

    status: str = "unknown"
    message: str = ""
    timestamp: EpochTimestamp = None
    last_synced: EpochTimestamp = None
    is_in_sync: bool = False
    sync_actions: LenientInt = 0

    @field_validator("status", "message", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return str(value).strip()
