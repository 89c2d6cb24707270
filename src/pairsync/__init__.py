"""pairsync - Async Python client for a pair-trading bot's dashboard data."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pairsync")
except PackageNotFoundError:
    __version__ = "0+local"
from pairsync.client import DashboardClient
from pairsync.config import CacheTtls, PairsyncConfig
from pairsync.exceptions import (
    FetchError,
    PairsyncConfigError,
    PairsyncError,
    PrimaryUnavailableError,
    ReconciliationError,
    SecondaryUnavailableError,
    SubscriptionError,
)
from pairsync.models import (
    AccountSummary,
    BotEvent,
    BotHealth,
    CorrelationPair,
    DashboardData,
    PerformancePoint,
    PerformanceSummary,
    RemoteSyncStatus,
    SyncPhase,
    SyncResult,
    SyncStatus,
    Trade,
)
from pairsync.preferences import DashboardPreferences, PreferencesStore, Theme
from pairsync.query import Direction, OrderBy, QueryShape, Where
from pairsync.subscriptions import SubscriptionHandle, SubscriptionSlot, SubscriptionState, acquire_subscription

__all__ = [
    "__version__",
    "AccountSummary",
    "BotEvent",
    "BotHealth",
    "CacheTtls",
    "CorrelationPair",
    "DashboardClient",
    "DashboardData",
    "DashboardPreferences",
    "Direction",
    "FetchError",
    "OrderBy",
    "PairsyncConfig",
    "PairsyncConfigError",
    "PairsyncError",
    "PerformancePoint",
    "PerformanceSummary",
    "PreferencesStore",
    "PrimaryUnavailableError",
    "QueryShape",
    "ReconciliationError",
    "RemoteSyncStatus",
    "SecondaryUnavailableError",
    "SubscriptionError",
    "SubscriptionHandle",
    "SubscriptionSlot",
    "SubscriptionState",
    "SyncPhase",
    "SyncResult",
    "SyncStatus",
    "Theme",
    "Trade",
    "Where",
    "acquire_subscription",
]
