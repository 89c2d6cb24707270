"""High-level async client for the trading bot's dashboard data."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from pairsync._api import account as _account_api
from pairsync._api import correlations as _correlations_api
from pairsync._api import dashboard as _dashboard_api
from pairsync._api import events as _events_api
from pairsync._api import health as _health_api
from pairsync._api import performance as _performance_api
from pairsync._api import sync as _sync_api
from pairsync._api import trades as _trades_api
from pairsync._api._common import DataContext
from pairsync._cache import TtlCache
from pairsync._constants import (
    COLLECTION_ACCOUNT_METRICS,
    COLLECTION_BOT_EVENTS,
    COLLECTION_CORRELATED_PAIRS,
    COLLECTION_TRADES,
)
from pairsync._livestore import LiveStore, MqttLiveStore
from pairsync._retry import RetryPolicy
from pairsync._transport import HttpTransport, PrimaryTransport
from pairsync.config import PairsyncConfig
from pairsync.exceptions import PairsyncError
from pairsync.models.account import AccountSummary
from pairsync.models.bot_event import BotEvent
from pairsync.models.correlation import CorrelationPair
from pairsync.models.dashboard import BotHealth, DashboardData
from pairsync.models.performance import PerformancePoint
from pairsync.models.sync import RemoteSyncStatus, SyncResult, SyncStatus
from pairsync.models.trade import Trade
from pairsync.preferences import PreferencesStore
from pairsync.query import QueryShape
from pairsync.state.machine import SyncStateMachine
from pairsync.subscriptions import (
    SnapshotStream,
    SubscriptionHandle,
    SubscriptionManager,
    acquire_subscription,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorHandler = Callable[[BaseException], None]


def _normalized(
    normalize: Callable[[list[dict[str, Any]]], T],
    on_data: Callable[[T], None],
    on_error: ErrorHandler,
) -> Callable[[list[dict[str, Any]]], None]:
    """Wrap *on_data* so it receives models instead of raw records."""

    def _deliver(records: list[dict[str, Any]]) -> None:
        try:
            data = normalize(records)
        except ValueError as exc:
            on_error(exc)
            return
        on_data(data)

    return _deliver


class DashboardClient:
    """Async client for the bot's API and its live document store.

    Usage::

        async with DashboardClient(PairsyncConfig.from_env()) as client:
            trades = await client.fetch_trades(status="open")
            handle = client.subscribe_bot_events(print, print)
            ...
            handle.cancel()

    ``transport`` and ``store`` replace the HTTP transport and the live
    store (test doubles, alternative backends); ``cache`` replaces the
    default cache (e.g. one with a fake clock).
    """

    def __init__(
        self,
        config: PairsyncConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: PrimaryTransport | None = None,
        store: LiveStore | None = None,
        cache: TtlCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or PairsyncConfig.from_env()
        self._external_session = session is not None
        self._http_session = session
        self._injected_transport = transport
        self._injected_store = store
        self._owned_store: MqttLiveStore | None = None
        self._cache = cache or TtlCache()
        self._sleep = sleep
        self._ctx: DataContext | None = None
        self._manager: SubscriptionManager | None = None
        self._sync: SyncStateMachine | None = None
        self._preferences = PreferencesStore.load(self._config.preferences_path, cache=self._cache)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DashboardClient:
        needs_http = self._injected_transport is None or self._injected_store is None
        if needs_http and self._http_session is None:
            self._http_session = aiohttp.ClientSession()

        transport = self._injected_transport
        if transport is None:
            assert self._http_session is not None  # noqa: S101
            transport = HttpTransport(self._config, self._http_session)

        store = self._injected_store
        if store is None:
            assert self._http_session is not None  # noqa: S101
            self._owned_store = MqttLiveStore(self._config, self._http_session)
            await self._owned_store.start()
            store = self._owned_store

        self._ctx = DataContext(
            cache=self._cache,
            transport=transport,
            store=store,
            retry_policy=RetryPolicy.from_config(self._config),
            ttls=self._config.ttls,
            sleep=self._sleep,
        )
        self._manager = SubscriptionManager(store)
        self._sync = SyncStateMachine(lambda: _sync_api.trigger_reconciliation(self._require_ctx()))
        if self._config.live_enabled:
            self._sync.attach_feed(self._manager)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._sync is not None:
            self._sync.detach_feed()
        if self._manager is not None:
            self._manager.close()
        if self._owned_store is not None:
            await self._owned_store.close()
            self._owned_store = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._ctx = None
        self._manager = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_ctx(self) -> DataContext:
        if self._ctx is None:
            raise PairsyncError("Client not initialized. Use 'async with DashboardClient(...) as client:'")
        return self._ctx

    def _require_manager(self) -> SubscriptionManager:
        if self._manager is None:
            raise PairsyncError("Client not initialized. Use 'async with DashboardClient(...) as client:'")
        return self._manager

    def _require_sync(self) -> SyncStateMachine:
        if self._sync is None:
            raise PairsyncError("Client not initialized. Use 'async with DashboardClient(...) as client:'")
        return self._sync

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> PairsyncConfig:
        return self._config

    @property
    def cache(self) -> TtlCache:
        return self._cache

    @property
    def preferences(self) -> PreferencesStore:
        return self._preferences

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._require_manager()

    @property
    def sync_machine(self) -> SyncStateMachine:
        return self._require_sync()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_trades(self, status: str | None = None) -> list[Trade]:
        return await _trades_api.fetch_trades(self._require_ctx(), status=status)

    async def fetch_account_summary(self) -> AccountSummary:
        return await _account_api.fetch_account_summary(self._require_ctx())

    async def fetch_correlation_pairs(self, cointegrated_only: bool = False) -> list[CorrelationPair]:
        return await _correlations_api.fetch_correlation_pairs(self._require_ctx(), cointegrated_only=cointegrated_only)

    async def fetch_bot_events(self, limit: int = 20) -> list[BotEvent]:
        return await _events_api.fetch_bot_events(self._require_ctx(), limit=limit)

    async def fetch_performance_history(self, days: int = 30) -> list[PerformancePoint]:
        return await _performance_api.fetch_performance_history(self._require_ctx(), days=days)

    async def fetch_dashboard_data(self) -> DashboardData:
        return await _dashboard_api.fetch_dashboard_data(self._require_ctx())

    async def fetch_sync_status(self) -> RemoteSyncStatus:
        """Sync status reported by the bot; an ``error`` status when unreachable."""
        return await _sync_api.fetch_sync_status(self._require_ctx())

    async def check_bot_health(self) -> BotHealth:
        return await _health_api.check_bot_health(self._require_ctx())

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_trades(
        self,
        on_data: Callable[[list[Trade]], None],
        on_error: ErrorHandler,
        *,
        status: str | None = None,
        live: bool = True,
    ) -> SubscriptionHandle:
        return self._require_manager().subscribe(
            COLLECTION_TRADES,
            QueryShape(),
            _normalized(lambda records: _trades_api.normalize_trades(records, status), on_data, on_error),
            on_error,
            live=live,
        )

    def subscribe_bot_events(
        self,
        on_data: Callable[[list[BotEvent]], None],
        on_error: ErrorHandler,
        *,
        limit: int = 20,
        live: bool = True,
    ) -> SubscriptionHandle:
        return self._require_manager().subscribe(
            COLLECTION_BOT_EVENTS,
            QueryShape.latest(limit=limit),
            _normalized(lambda records: _events_api.normalize_events(records, limit), on_data, on_error),
            on_error,
            live=live,
        )

    def subscribe_correlation_pairs(
        self,
        on_data: Callable[[list[CorrelationPair]], None],
        on_error: ErrorHandler,
        *,
        cointegrated_only: bool = False,
        live: bool = True,
    ) -> SubscriptionHandle:
        source = _correlations_api.CorrelationPairsSource(self._require_ctx(), cointegrated_only)
        return self._require_manager().subscribe(
            COLLECTION_CORRELATED_PAIRS,
            QueryShape(),
            _normalized(source.normalize, on_data, on_error),
            on_error,
            live=live,
        )

    def subscribe_account_metrics(
        self,
        on_data: Callable[[list[AccountSummary]], None],
        on_error: ErrorHandler,
        *,
        limit: int = 30,
        live: bool = True,
    ) -> SubscriptionHandle:
        """Account snapshots, newest first."""
        return self._require_manager().subscribe(
            COLLECTION_ACCOUNT_METRICS,
            QueryShape.latest(limit=limit),
            _normalized(
                lambda records: [AccountSummary.model_validate(record) for record in records],
                on_data,
                on_error,
            ),
            on_error,
            live=live,
        )

    def acquire(
        self,
        collection: str,
        query: QueryShape,
        *,
        live: bool = True,
    ) -> contextlib.AbstractAsyncContextManager[SnapshotStream]:
        """Scoped raw subscription, see :func:`pairsync.subscriptions.acquire_subscription`."""
        return acquire_subscription(self._require_manager(), collection, query, live=live)

    async def watch_bot_events(self, limit: int = 20) -> AsyncIterator[list[BotEvent]]:
        """Yield normalized event snapshots until the subscription fails."""
        async with self.acquire(COLLECTION_BOT_EVENTS, QueryShape.latest(limit=limit)) as stream:
            async for records in stream:
                yield _events_api.normalize_events(records, limit)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def trigger_sync(self) -> SyncResult:
        """Ask the bot to reconcile positions; failures yield an error result."""
        return await self._require_sync().trigger_sync()

    def get_sync_status(self) -> SyncStatus:
        return self._require_sync().status

    # ------------------------------------------------------------------
    # Cache and refresh
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear_all()

    def refresh_data(self) -> None:
        """Drop cached reads and re-establish every subscription slot."""
        _logger.debug("Manual refresh requested")
        self._cache.clear_all()
        if self._manager is not None:
            self._manager.refresh()
