"""Data models for bot records and synchronization state."""

from pairsync.models._base import EpochTimestamp, PairsyncBaseModel, flatten_document
from pairsync.models.account import AccountSummary
from pairsync.models.bot_event import BotEvent
from pairsync.models.correlation import CorrelationPair, sort_pairs
from pairsync.models.dashboard import BotHealth, DashboardData, RiskMetrics
from pairsync.models.performance import PerformancePoint, PerformanceSummary
from pairsync.models.sync import RemoteSyncStatus, SyncPhase, SyncResult, SyncStatus
from pairsync.models.trade import CorrelatedLeg, Trade

__all__ = [
    "AccountSummary",
    "BotEvent",
    "BotHealth",
    "CorrelatedLeg",
    "CorrelationPair",
    "DashboardData",
    "EpochTimestamp",
    "PairsyncBaseModel",
    "PerformancePoint",
    "PerformanceSummary",
    "RemoteSyncStatus",
    "RiskMetrics",
    "SyncPhase",
    "SyncResult",
    "SyncStatus",
    "Trade",
    "flatten_document",
    "sort_pairs",
]
