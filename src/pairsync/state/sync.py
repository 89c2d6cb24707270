"""Reconciliation actions and the pure transition function."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pairsync.models.sync import SyncPhase, SyncStatus


@dataclass(frozen=True)
class SyncStart:
    """A reconciliation request is about to be sent."""


@dataclass(frozen=True)
class SyncSuccess:
    last_synced: datetime
    sync_actions: int = 0


@dataclass(frozen=True)
class SyncFailure:
    error: Exception


@dataclass(frozen=True)
class ExternalUpdate:
    """The backend reported a reconciliation pass through the event feed."""

    last_synced: datetime | None
    sync_actions: int = 0


SyncAction = SyncStart | SyncSuccess | SyncFailure | ExternalUpdate


def reduce_sync(status: SyncStatus, action: SyncAction) -> SyncStatus:
    """Return the status after *action*; *status* itself is never modified.

    Actions that do not apply to the current phase return *status*
    unchanged. A failure keeps ``is_in_sync`` as it was: the last
    successful pass is still the best knowledge available.
    """
    match action:
        case SyncStart():
            if status.phase is SyncPhase.SYNCING:
                return status
            return status.model_copy(update={"phase": SyncPhase.SYNCING, "loading": True, "error": None})
        case SyncSuccess(last_synced=last_synced, sync_actions=sync_actions):
            if status.phase is not SyncPhase.SYNCING:
                return status
            return status.model_copy(
                update={
                    "phase": SyncPhase.SYNCED,
                    "loading": False,
                    "error": None,
                    "is_in_sync": True,
                    "last_synced": last_synced,
                    "sync_actions": sync_actions,
                }
            )
        case SyncFailure(error=error):
            if status.phase is not SyncPhase.SYNCING:
                return status
            return status.model_copy(update={"phase": SyncPhase.FAILED, "loading": False, "error": error})
        case ExternalUpdate(last_synced=last_synced, sync_actions=sync_actions):
            return status.model_copy(
                update={
                    "phase": SyncPhase.SYNCED,
                    "loading": False,
                    "error": None,
                    "is_in_sync": True,
                    "last_synced": last_synced if last_synced is not None else status.last_synced,
                    "sync_actions": sync_actions,
                }
            )
    raise TypeError(f"Unknown sync action: {action!r}")
