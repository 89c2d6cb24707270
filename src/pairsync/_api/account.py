"""Account summary reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_object, fetch_with_fallback
from pairsync._constants import COLLECTION_ACCOUNT_METRICS
from pairsync.models.account import AccountSummary
from pairsync.query import QueryShape

ENDPOINT = "/account-metrics"


@dataclass
class AccountSummarySource:
    ctx: DataContext
    entity: str = "accountSummary"

    async def fetch_primary(self) -> dict[str, Any]:
        body = await self.ctx.transport.get_json(ENDPOINT)
        return expect_object(body, endpoint=ENDPOINT, keys=("metrics", "accountMetrics", "data"))

    async def fetch_secondary(self) -> dict[str, Any]:
        latest = await self.ctx.store.get(COLLECTION_ACCOUNT_METRICS, QueryShape.latest(limit=1))
        return latest[0] if latest else {}

    def normalize(self, record: dict[str, Any]) -> AccountSummary:
        return AccountSummary.model_validate(record)


async def fetch_account_summary(ctx: DataContext) -> AccountSummary:
    """Latest balance snapshot (defaults when the bot has not written one yet)."""
    return await fetch_with_fallback(
        ctx,
        key="accountSummary",
        ttl=ctx.ttls.account_summary,
        source=AccountSummarySource(ctx),
    )
