"""Bot event log reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pairsync._api._common import DataContext, expect_records, fetch_with_fallback
from pairsync._cache import cache_key
from pairsync._constants import COLLECTION_BOT_EVENTS
from pairsync.models.bot_event import BotEvent
from pairsync.query import QueryShape

ENDPOINT = "/events"


def normalize_events(records: list[dict[str, Any]], limit: int | None = None) -> list[BotEvent]:
    """Validate event records newest first, truncated to *limit*."""
    events = [BotEvent.model_validate(record) for record in records]
    events.sort(key=lambda event: event.timestamp.timestamp() if event.timestamp else 0.0, reverse=True)
    return events[:limit] if limit is not None else events


@dataclass
class BotEventsSource:
    ctx: DataContext
    limit: int = 20
    entity: str = "botEvents"

    async def fetch_primary(self) -> list[dict[str, Any]]:
        body = await self.ctx.transport.get_json(ENDPOINT, {"limit": self.limit})
        return expect_records(body, endpoint=ENDPOINT, keys=("events", "botEvents", "data"))

    async def fetch_secondary(self) -> list[dict[str, Any]]:
        return await self.ctx.store.get(COLLECTION_BOT_EVENTS, QueryShape.latest(limit=self.limit))

    def normalize(self, records: list[dict[str, Any]]) -> list[BotEvent]:
        return normalize_events(records, self.limit)


async def fetch_bot_events(ctx: DataContext, *, limit: int = 20) -> list[BotEvent]:
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    return await fetch_with_fallback(
        ctx,
        key=cache_key("botEvents", {"limit": limit}),
        ttl=ctx.ttls.bot_events,
        source=BotEventsSource(ctx, limit),
    )
