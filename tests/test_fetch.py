from __future__ import annotations

import pytest

from pairsync._api._common import DataContext
from pairsync._api.account import fetch_account_summary
from pairsync._api.correlations import fetch_correlation_pairs
from pairsync._api.dashboard import assemble_dashboard, fetch_dashboard_data
from pairsync._api.events import fetch_bot_events
from pairsync._api.health import check_bot_health
from pairsync._api.performance import fetch_performance_history, history_from_metrics
from pairsync._api.sync import fetch_sync_status, trigger_reconciliation
from pairsync._api.trades import fetch_trades
from pairsync._constants import SYNC_STATUS_CACHE_KEY
from pairsync.exceptions import FetchError, PrimaryUnavailableError, SecondaryUnavailableError

from conftest import FakeClock, FakeStore, FakeTransport

TRADES = [
    {"id": "t1", "symbol": "BTCUSDT", "status": "OPEN", "entryPrice": "100", "timestamp": 1_700_000_100},
    {"id": "t2", "symbol": "ETHUSDT", "status": "active", "executedPrice": "50", "timestamp": 1_700_000_300},
    {"id": "t3", "symbol": "SOLUSDT", "status": "closed", "pnl": "4.5", "timestamp": 1_700_000_200},
    {"id": "t4", "symbol": "XRPUSDT", "status": "closed", "pnl": "-1.5", "timestamp": 1_700_000_000},
]


@pytest.mark.asyncio
async def test_primary_result_is_cached(ctx: DataContext, transport: FakeTransport, store: FakeStore) -> None:
    transport.respond("/trades", TRADES)

    first = await fetch_trades(ctx)
    second = await fetch_trades(ctx)

    assert [trade.id for trade in first] == ["t2", "t3", "t1", "t4"]
    assert second is first
    assert transport.count("GET", "/trades") == 1
    assert store.reads == []


@pytest.mark.asyncio
async def test_cache_expires_after_ttl(ctx: DataContext, transport: FakeTransport, clock: FakeClock) -> None:
    transport.respond("/trades", TRADES)

    await fetch_trades(ctx)
    clock.advance(ctx.ttls.trades)
    await fetch_trades(ctx)

    assert transport.count("GET", "/trades") == 2


@pytest.mark.asyncio
async def test_falls_back_to_store_and_caches_secondary_value(
    ctx: DataContext, transport: FakeTransport, store: FakeStore
) -> None:
    transport.fail("/trades", status_code=503)
    store.collections["trades"] = TRADES

    trades = await fetch_trades(ctx, status="open")

    assert [trade.id for trade in trades] == ["t2", "t1"]
    assert trades[0].entry_price == "50"
    # 1 attempt + 3 retries before falling back
    assert transport.count("GET", "/trades") == 4
    assert ctx.cache.get("trades:status=open") is trades

    again = await fetch_trades(ctx, status="OPEN")
    assert again is trades
    assert len(store.reads) == 1


@pytest.mark.asyncio
async def test_client_errors_fall_back_without_retry(
    ctx: DataContext, transport: FakeTransport, store: FakeStore
) -> None:
    transport.fail("/trades", status_code=404, transient=False)
    store.collections["trades"] = TRADES

    await fetch_trades(ctx)

    assert transport.count("GET", "/trades") == 1


@pytest.mark.asyncio
async def test_unexpected_primary_shape_falls_back(ctx: DataContext, transport: FakeTransport, store: FakeStore) -> None:
    transport.respond("/trades", "oops")
    store.collections["trades"] = TRADES[:1]

    trades = await fetch_trades(ctx)

    assert [trade.id for trade in trades] == ["t1"]
    assert transport.count("GET", "/trades") == 1


@pytest.mark.asyncio
async def test_both_sources_failing_raises_and_is_not_cached(
    ctx: DataContext, transport: FakeTransport, store: FakeStore
) -> None:
    transport.fail("/events", status_code=500)
    store.failing.add("botEvents")

    with pytest.raises(FetchError) as excinfo:
        await fetch_bot_events(ctx, limit=5)

    assert excinfo.value.entity == "botEvents"
    assert isinstance(excinfo.value.primary_error, PrimaryUnavailableError)
    assert isinstance(excinfo.value.secondary_error, SecondaryUnavailableError)
    assert len(ctx.cache) == 0

    store.failing.clear()
    store.collections["botEvents"] = [{"id": "e1", "type": "bot_started", "timestamp": 1}]
    events = await fetch_bot_events(ctx, limit=5)

    assert [event.id for event in events] == ["e1"]
    assert transport.count("GET", "/events") == 8


@pytest.mark.asyncio
async def test_bot_events_limit_and_legacy_type(ctx: DataContext, transport: FakeTransport) -> None:
    transport.respond(
        "/events",
        {"events": [{"id": f"e{i}", "eventType": "tick", "timestamp": i} for i in range(1, 6)]},
    )

    events = await fetch_bot_events(ctx, limit=3)

    assert [event.id for event in events] == ["e5", "e4", "e3"]
    assert all(event.type == "tick" for event in events)
    assert transport.calls[0] == ("GET", "/events", {"limit": 3})


@pytest.mark.asyncio
async def test_bot_events_rejects_non_positive_limit(ctx: DataContext) -> None:
    with pytest.raises(ValueError):
        await fetch_bot_events(ctx, limit=0)


@pytest.mark.asyncio
async def test_account_summary_from_store_latest_snapshot(
    ctx: DataContext, transport: FakeTransport, store: FakeStore
) -> None:
    transport.fail("/account-metrics")
    store.collections["accountMetrics"] = [
        {"id": "m1", "totalBalance": 1000, "timestamp": 1},
        {"id": "m2", "totalBalance": 1100, "timestamp": 2},
    ]

    summary = await fetch_account_summary(ctx)

    assert summary.id == "m2"
    assert summary.total_balance == 1100.0


@pytest.mark.asyncio
async def test_account_summary_defaults_when_store_empty(ctx: DataContext, transport: FakeTransport) -> None:
    transport.fail("/account-metrics")

    summary = await fetch_account_summary(ctx)

    assert summary.id == "latest"
    assert summary.total_balance == 0.0


@pytest.mark.asyncio
async def test_correlation_pairs_cointegrated_filter_and_order(ctx: DataContext, transport: FakeTransport) -> None:
    transport.respond(
        "/correlations",
        [
            {"pairA": "A", "pairB": "B", "correlation": 0.9, "cointegrated": True},
            {"pairA": "C", "pairB": "D", "correlation": 0.99},
            {"pairA": "E", "pairB": "F", "correlation": 0.95, "cointegrated": True},
        ],
    )

    all_pairs = await fetch_correlation_pairs(ctx)
    cointegrated = await fetch_correlation_pairs(ctx, cointegrated_only=True)

    assert [pair.id for pair in all_pairs] == ["E_F", "A_B", "C_D"]
    assert [pair.id for pair in cointegrated] == ["E_F", "A_B"]
    assert transport.count("GET", "/correlations") == 2


@pytest.mark.asyncio
async def test_performance_history_from_store(ctx: DataContext, transport: FakeTransport, store: FakeStore) -> None:
    transport.fail("/performance/history")
    store.collections["accountMetrics"] = [
        {"id": "m1", "totalBalance": 1000, "timestamp": 1_700_000_000},
        {"id": "m2", "totalBalance": 1050, "timestamp": 1_700_086_400},
        {"id": "m3", "totalBalance": 1100, "timestamp": 1_700_172_800},
    ]

    points = await fetch_performance_history(ctx, days=2)

    assert [point.value for point in points] == [1050.0, 1100.0]
    assert [point.date for point in points] == ["2023-11-15", "2023-11-16"]


def test_history_relative_to_earliest_balance() -> None:
    points = history_from_metrics(
        [{"totalBalance": 1100, "timestamp": 2}, {"totalBalance": 1000, "timestamp": 1}],
        relative=True,
    )
    assert [point["value"] for point in points] == [0.0, 100.0]
    assert [point["actualValue"] for point in points] == [1000.0, 1100.0]


def test_assemble_dashboard_from_store_records() -> None:
    data = assemble_dashboard(
        metrics=[{"id": "m2", "totalBalance": 1100, "availableMargin": 400, "dailyPnl": 5, "timestamp": 2}],
        events=[{"id": "e1", "type": "bot_started"}],
        trades=TRADES,
        pairs=[{"id": "A_B", "pairA": "A", "pairB": "B", "cointegrated": True}],
        api_errors=[{"id": "err1", "message": "rate limited"}],
        now=1_700_000_000,
    )

    performance = data["performance"]
    assert performance["totalTrades"] == 2
    assert performance["profitableTrades"] == 1
    assert performance["winRate"] == 0.5
    assert performance["totalPnl"] == 3.0
    assert performance["dailyPnl"] == 5
    assert [trade["id"] for trade in data["activeTrades"]] == ["t1", "t2"]
    assert data["accountMetrics"]["id"] == "m2"
    assert data["accountMetrics"]["winRate"] == 0.5
    assert data["riskMetrics"] == {"totalBalance": 1100, "availableMargin": 400}
    assert data["timestamp"] == 1_700_000_000


@pytest.mark.asyncio
async def test_dashboard_falls_back_to_assembled_aggregate(
    ctx: DataContext, transport: FakeTransport, store: FakeStore
) -> None:
    transport.fail("/dashboard-data")
    store.collections["trades"] = TRADES
    store.collections["accountMetrics"] = [{"id": "m1", "totalBalance": 1000, "timestamp": 1}]
    store.collections["correlatedPairs"] = [
        {"id": "A_B", "pairA": "A", "pairB": "B", "cointegrated": True, "timestamp": 1},
        {"id": "C_D", "pairA": "C", "pairB": "D", "cointegrated": False, "timestamp": 1},
    ]

    data = await fetch_dashboard_data(ctx)

    assert {trade.id for trade in data.active_trades} == {"t1", "t2"}
    assert data.performance.total_trades == 2
    assert [pair.id for pair in data.correlated_pairs] == ["A_B"]
    assert data.account_metrics is not None
    assert data.account_metrics.total_balance == 1000.0
    assert data.api_errors == []
    assert {collection for collection, _ in store.reads} == {
        "accountMetrics",
        "botEvents",
        "trades",
        "correlatedPairs",
        "apiErrors",
    }


@pytest.mark.asyncio
async def test_dashboard_from_primary(ctx: DataContext, transport: FakeTransport) -> None:
    transport.respond("/dashboard-data", {"performance": {"totalPnl": 10}, "activeTrades": [{"id": "t1"}]})

    data = await fetch_dashboard_data(ctx)

    assert data.performance.total_pnl == 10.0
    assert data.active_trades[0].id == "t1"


@pytest.mark.asyncio
async def test_reconciliation_success_invalidates_sync_status(ctx: DataContext, transport: FakeTransport) -> None:
    ctx.cache.set(SYNC_STATUS_CACHE_KEY, "stale", 60)
    transport.respond("/sync-positions", {"status": "success", "message": "ok", "syncActions": 2})

    result = await trigger_reconciliation(ctx)

    assert result.ok
    assert result.sync_actions == 2
    assert ctx.cache.get(SYNC_STATUS_CACHE_KEY) is None


@pytest.mark.asyncio
async def test_reconciliation_failure_returns_error_result(ctx: DataContext, transport: FakeTransport) -> None:
    ctx.cache.set(SYNC_STATUS_CACHE_KEY, "stale", 60)
    transport.fail("/sync-positions", status_code=503)

    result = await trigger_reconciliation(ctx)

    assert result.status == "error"
    assert not result.ok
    assert result.sync_actions == 0
    assert result.timestamp is not None
    assert ctx.cache.get(SYNC_STATUS_CACHE_KEY) is None
    # Writes are sent once, even for transient failures.
    assert transport.count("POST", "/sync-positions") == 1


@pytest.mark.asyncio
async def test_sync_status_default_on_failure_is_not_cached(ctx: DataContext, transport: FakeTransport) -> None:
    transport.fail("/sync-status", status_code=404, transient=False)

    status = await fetch_sync_status(ctx)

    assert status.status == "error"
    assert status.is_in_sync is False
    assert ctx.cache.get(SYNC_STATUS_CACHE_KEY) is None

    transport.respond("/sync-status", {"status": "ok", "isInSync": True, "syncActions": 1})
    status = await fetch_sync_status(ctx)
    assert status.is_in_sync is True
    assert ctx.cache.get(SYNC_STATUS_CACHE_KEY) is status


@pytest.mark.asyncio
async def test_health_is_primary_only(ctx: DataContext, transport: FakeTransport, store: FakeStore) -> None:
    transport.respond("/health-check", {"status": "OK", "version": "1.2.0"})

    health = await check_bot_health(ctx)

    assert health.is_healthy
    assert health.version == "1.2.0"

    ctx.cache.clear_all()
    transport.fail("/health-check", status_code=404, transient=False)
    with pytest.raises(FetchError):
        await check_bot_health(ctx)
    assert store.reads == []


@pytest.mark.asyncio
async def test_out_of_range_timestamp_does_not_fail_the_list(ctx: DataContext, transport: FakeTransport) -> None:
    transport.respond(
        "/trades",
        [
            {"id": "ok", "status": "open", "timestamp": 1_700_000_000},
            {"id": "huge", "status": "open", "timestamp": 1e300},
            {"id": "far", "status": "open", "timestamp": 9e16},
        ],
    )

    trades = await fetch_trades(ctx)

    assert [trade.id for trade in trades] == ["ok", "huge", "far"]
    assert trades[0].timestamp is not None
    assert trades[1].timestamp is None
    assert trades[2].timestamp is None


def test_assembled_dashboard_excludes_trades_without_status() -> None:
    data = assemble_dashboard(
        metrics=[],
        events=[],
        trades=[{"id": "t1", "timestamp": 1}, {"id": "t2", "status": "Active", "timestamp": 2}],
        pairs=[],
        api_errors=[],
        now=1,
    )

    assert [trade["id"] for trade in data["activeTrades"]] == ["t2"]
    assert data["performance"]["totalTrades"] == 0


@pytest.mark.asyncio
async def test_status_is_normalized_once_for_request_and_cache(ctx: DataContext, transport: FakeTransport) -> None:
    transport.respond("/trades", TRADES)

    first = await fetch_trades(ctx, status="  Open ")
    second = await fetch_trades(ctx, status="open")

    assert transport.calls == [("GET", "/trades", {"status": "open"})]
    assert second is first
    assert ctx.cache.get("trades:status=open") is first

    await fetch_trades(ctx, status="   ")
    assert transport.calls[-1] == ("GET", "/trades", {})
