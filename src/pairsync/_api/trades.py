"""Trade list reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_records, fetch_with_fallback
from pairsync._cache import cache_key
from pairsync._constants import COLLECTION_TRADES
from pairsync.models.trade import Trade
from pairsync.query import QueryShape

ENDPOINT = "/trades"


def normalize_trades(records: list[dict[str, Any]], status: str | None = None) -> list[Trade]:
    """Validate trade records, filter by *status* and order newest first."""
    trades = [Trade.model_validate(record) for record in records]
    selected = [trade for trade in trades if trade.matches_status(status)]
    selected.sort(key=lambda trade: trade.timestamp.timestamp() if trade.timestamp else 0.0, reverse=True)
    return selected


@dataclass
class TradesSource:
    ctx: DataContext
    status: str | None = None
    entity: str = "trades"

    async def fetch_primary(self) -> list[dict[str, Any]]:
        params = {"status": self.status} if self.status else None
        body = await self.ctx.transport.get_json(ENDPOINT, params)
        return expect_records(body, endpoint=ENDPOINT, keys=("trades", "data"))

    async def fetch_secondary(self) -> list[dict[str, Any]]:
        # Unordered on purpose: documents without a timestamp must not drop out.
        return await self.ctx.store.get(COLLECTION_TRADES, QueryShape())

    def normalize(self, records: list[dict[str, Any]]) -> list[Trade]:
        return normalize_trades(records, self.status)


async def fetch_trades(ctx: DataContext, *, status: str | None = None) -> list[Trade]:
    """Trades, optionally filtered by status (``open`` also matches ``active``)."""
    status = status.strip().lower() or None if status else None
    key = cache_key("trades", {"status": status})
    return await fetch_with_fallback(ctx, key=key, ttl=ctx.ttls.trades, source=TradesSource(ctx, status))
