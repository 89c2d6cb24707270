"""Dashboard aggregate reads.

The bot serves the aggregate from ``/dashboard-data``. When it is
unreachable the same shape is assembled from five live store reads.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_object, fetch_with_fallback
from pairsync._api.performance import history_from_metrics
from pairsync._constants import (
    COLLECTION_ACCOUNT_METRICS,
    COLLECTION_API_ERRORS,
    COLLECTION_BOT_EVENTS,
    COLLECTION_CORRELATED_PAIRS,
    COLLECTION_TRADES,
    OPEN_TRADE_STATUSES,
)
from pairsync.ingestion.normalize import first_present, normalize_status, safe_float
from pairsync.models.dashboard import DashboardData
from pairsync.query import QueryShape

ENDPOINT = "/dashboard-data"


def _pnl(record: dict[str, Any]) -> float:
    return safe_float(first_present(record, "pnl", "finalPnl")) or 0.0


def assemble_dashboard(
    metrics: list[dict[str, Any]],
    events: list[dict[str, Any]],
    trades: list[dict[str, Any]],
    pairs: list[dict[str, Any]],
    api_errors: list[dict[str, Any]],
    *,
    now: float | None = None,
) -> dict[str, Any]:
    """Compute the dashboard aggregate from raw live store records.

    *metrics*, *events* and *api_errors* are newest first. Performance
    figures come from closed trades; the PnL history is relative to the
    earliest balance in *metrics*.
    """
    stamp = now if now is not None else time.time()
    latest = metrics[0] if metrics else {}
    statuses = [(normalize_status(trade.get("status")), trade) for trade in trades]
    active = [trade for status, trade in statuses if status in OPEN_TRADE_STATUSES]
    closed = [trade for status, trade in statuses if status == "closed"]

    total_trades = len(closed)
    profitable_trades = sum(1 for trade in closed if _pnl(trade) > 0)
    win_rate = profitable_trades / total_trades if total_trades else 0.0
    total_pnl = sum(_pnl(trade) for trade in closed)
    daily_pnl = latest.get("dailyPnl", 0)

    account = {
        **latest,
        "id": latest.get("id", "latest"),
        "timestamp": latest.get("timestamp") or stamp,
        "totalPnl": total_pnl,
        "winRate": win_rate,
        "profitableTrades": profitable_trades,
        "totalTrades": total_trades,
    }
    return {
        "performance": {
            "totalPnl": total_pnl,
            "dailyPnl": daily_pnl,
            "winRate": win_rate,
            "profitableTrades": profitable_trades,
            "totalTrades": total_trades,
            "pnlHistory": history_from_metrics(metrics, relative=True),
        },
        "botEvents": events,
        "activeTrades": active,
        "correlatedPairs": pairs,
        "accountMetrics": account,
        "riskMetrics": {
            "totalBalance": first_present(latest, "totalBalance", "accountValue", "balance"),
            "availableMargin": first_present(latest, "availableMargin", "withdrawable"),
        },
        "walletAddress": latest.get("walletAddress"),
        "timestamp": stamp,
        "apiErrors": api_errors,
    }


@dataclass
class DashboardSource:
    ctx: DataContext
    entity: str = "dashboard"

    async def fetch_primary(self) -> dict[str, Any]:
        body = await self.ctx.transport.get_json(ENDPOINT)
        return expect_object(body, endpoint=ENDPOINT, keys=("data",))

    async def fetch_secondary(self) -> dict[str, Any]:
        store = self.ctx.store
        metrics, events, trades, pairs, api_errors = await asyncio.gather(
            store.get(COLLECTION_ACCOUNT_METRICS, QueryShape.latest(limit=30)),
            store.get(COLLECTION_BOT_EVENTS, QueryShape.latest(limit=20)),
            store.get(COLLECTION_TRADES, QueryShape.latest()),
            store.get(COLLECTION_CORRELATED_PAIRS, QueryShape.latest(cointegrated=True)),
            store.get(COLLECTION_API_ERRORS, QueryShape.latest(limit=10)),
        )
        return assemble_dashboard(metrics, events, trades, pairs, api_errors)

    def normalize(self, record: dict[str, Any]) -> DashboardData:
        return DashboardData.model_validate(record)


async def fetch_dashboard_data(ctx: DataContext) -> DashboardData:
    return await fetch_with_fallback(ctx, key="dashboard", ttl=ctx.ttls.dashboard, source=DashboardSource(ctx))
