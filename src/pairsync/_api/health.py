"""Bot health check."""

from __future__ import annotations

from typing import Any

from pairsync._api._common import DataContext, expect_object, fetch_primary_only
from pairsync.models.dashboard import BotHealth

ENDPOINT = "/health-check"


async def check_bot_health(ctx: DataContext) -> BotHealth:
    """Health of the bot process (primary API only, no live store equivalent)."""

    async def _fetch() -> dict[str, Any]:
        body = await ctx.transport.get_json(ENDPOINT)
        if isinstance(body, str):
            return {"status": body}
        return expect_object(body, endpoint=ENDPOINT)

    return await fetch_primary_only(
        ctx,
        key="botHealth",
        ttl=ctx.ttls.health,
        entity="botHealth",
        fetch=_fetch,
        normalize=BotHealth.model_validate,
    )
