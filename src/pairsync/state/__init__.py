"""Reconciliation state.

Transitions are computed by the pure :func:`reduce_sync` over the
action types in :mod:`pairsync.state.sync`; :class:`SyncStateMachine`
owns the current :class:`~pairsync.models.SyncStatus` and performs the
side effects (the reconciliation write and the passive event feed).
"""

from pairsync.state.machine import SyncStateMachine
from pairsync.state.sync import ExternalUpdate, SyncAction, SyncFailure, SyncStart, SyncSuccess, reduce_sync

__all__ = [
    "ExternalUpdate",
    "SyncAction",
    "SyncFailure",
    "SyncStart",
    "SyncStateMachine",
    "SyncSuccess",
    "reduce_sync",
]
