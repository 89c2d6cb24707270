"""Correlation pair reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_records, fetch_with_fallback
from pairsync._cache import cache_key
from pairsync._constants import COLLECTION_CORRELATED_PAIRS
from pairsync.models.correlation import CorrelationPair, sort_pairs
from pairsync.query import QueryShape

ENDPOINT = "/correlations"


@dataclass
class CorrelationPairsSource:
    ctx: DataContext
    cointegrated_only: bool = False
    entity: str = "correlationPairs"

    async def fetch_primary(self) -> list[dict[str, Any]]:
        body = await self.ctx.transport.get_json(ENDPOINT)
        return expect_records(body, endpoint=ENDPOINT, keys=("pairs", "correlations", "correlatedPairs", "data"))

    async def fetch_secondary(self) -> list[dict[str, Any]]:
        return await self.ctx.store.get(COLLECTION_CORRELATED_PAIRS, QueryShape())

    def normalize(self, records: list[dict[str, Any]]) -> list[CorrelationPair]:
        pairs = [CorrelationPair.model_validate(record) for record in records]
        if self.cointegrated_only:
            pairs = [pair for pair in pairs if pair.cointegrated]
        return sort_pairs(pairs)


async def fetch_correlation_pairs(ctx: DataContext, *, cointegrated_only: bool = False) -> list[CorrelationPair]:
    """Candidate pairs, cointegrated first and then by correlation."""
    return await fetch_with_fallback(
        ctx,
        key=cache_key("correlationPairs", {"cointegrated_only": cointegrated_only}),
        ttl=ctx.ttls.correlation_pairs,
        source=CorrelationPairsSource(ctx, cointegrated_only),
    )
