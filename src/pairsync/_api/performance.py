"""Balance history reads."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_records, fetch_with_fallback
from pairsync._cache import cache_key
from pairsync._constants import COLLECTION_ACCOUNT_METRICS
from pairsync.ingestion.normalize import first_present, normalize_timestamp_seconds, safe_float, to_datetime
from pairsync.models.performance import PerformancePoint
from pairsync.query import QueryShape

ENDPOINT = "/performance/history"

_BALANCE_KEYS = ("totalBalance", "total_balance", "accountValue", "balance")


def _record_seconds(record: Mapping[str, Any]) -> float:
    return normalize_timestamp_seconds(record.get("timestamp")) or 0.0


def history_from_metrics(
    metrics: Iterable[Mapping[str, Any]],
    *,
    relative: bool = False,
) -> list[dict[str, Any]]:
    """Build chart points from account-metric snapshots, oldest first.

    With *relative* the value is the change against the earliest balance
    and the absolute balance is kept as ``actualValue``.
    """
    ordered = sorted(metrics, key=_record_seconds)
    baseline = 0.0
    if ordered:
        baseline = safe_float(first_present(ordered[0], *_BALANCE_KEYS)) or 0.0
    points: list[dict[str, Any]] = []
    for record in ordered:
        balance = safe_float(first_present(record, *_BALANCE_KEYS)) or 0.0
        stamp = to_datetime(record.get("timestamp"))
        point: dict[str, Any] = {
            "date": stamp.date().isoformat() if stamp else "",
            "value": balance - baseline if relative else balance,
            "timestamp": record.get("timestamp"),
        }
        if relative:
            point["actualValue"] = balance
        points.append(point)
    return points


@dataclass
class PerformanceHistorySource:
    ctx: DataContext
    days: int = 30
    entity: str = "performanceHistory"

    async def fetch_primary(self) -> list[dict[str, Any]]:
        body = await self.ctx.transport.get_json(ENDPOINT, {"days": self.days})
        return expect_records(body, endpoint=ENDPOINT, keys=("history", "data"))

    async def fetch_secondary(self) -> list[dict[str, Any]]:
        metrics = await self.ctx.store.get(COLLECTION_ACCOUNT_METRICS, QueryShape.latest(limit=self.days))
        return history_from_metrics(metrics)

    def normalize(self, records: list[dict[str, Any]]) -> list[PerformancePoint]:
        return [PerformancePoint.model_validate(record) for record in records]


async def fetch_performance_history(ctx: DataContext, *, days: int = 30) -> list[PerformancePoint]:
    """Daily balance points for the last *days* snapshots."""
    if days <= 0:
        raise ValueError(f"days must be positive, got {days}")
    return await fetch_with_fallback(
        ctx,
        key=cache_key("performanceHistory", {"days": days}),
        ttl=ctx.ttls.performance_history,
        source=PerformanceHistorySource(ctx, days),
    )
