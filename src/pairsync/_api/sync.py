"""Position reconciliation write and remote sync status."""

from __future__ import annotations

import logging
import time
from typing import Any

from pairsync._api._common import DataContext, expect_object
from pairsync._constants import SYNC_STATUS_CACHE_KEY
from pairsync._retry import call_with_retry
from pairsync.exceptions import PrimaryUnavailableError
from pairsync.models.sync import RemoteSyncStatus, SyncResult

_logger = logging.getLogger(__name__)

SYNC_ENDPOINT = "/sync-positions"
STATUS_ENDPOINT = "/sync-status"

SYNC_FAILED_MESSAGE = "Position sync failed, please try again later"


async def trigger_reconciliation(ctx: DataContext) -> SyncResult:
    """Ask the bot to reconcile its positions with the exchange ledger.

    Sent once (the write is not idempotent, so it is never retried) and
    never cached. A transport failure does not raise: it yields a
    ``status="error"`` result the caller can show as a non-fatal notice.
    The cached sync status is invalidated after every attempt.
    """
    try:
        body = await ctx.transport.post_json(SYNC_ENDPOINT)
        result = SyncResult.model_validate(body if isinstance(body, dict) else {})
    except (PrimaryUnavailableError, ValueError) as exc:
        _logger.warning("Position sync request failed: %s", exc)
        result = SyncResult(status="error", message=SYNC_FAILED_MESSAGE, sync_actions=0, timestamp=time.time())
    finally:
        ctx.cache.invalidate(SYNC_STATUS_CACHE_KEY)
    _logger.debug("Position sync result status=%s actions=%d", result.status, result.sync_actions)
    return result


def _default_status(message: str) -> RemoteSyncStatus:
    return RemoteSyncStatus(status="error", message=message, is_in_sync=False, timestamp=time.time())


async def fetch_sync_status(ctx: DataContext) -> RemoteSyncStatus:
    """Sync status as reported by the bot.

    Failures return an ``error`` status instead of raising and are not
    cached.
    """
    cached = ctx.cache.get(SYNC_STATUS_CACHE_KEY)
    if cached is not None:
        return cached

    async def _fetch() -> dict[str, Any]:
        body = await ctx.transport.get_json(STATUS_ENDPOINT)
        return expect_object(body, endpoint=STATUS_ENDPOINT, keys=("data",))

    try:
        record = await call_with_retry(_fetch, ctx.retry_policy, description="Sync status read", sleep=ctx.sleep)
        status = RemoteSyncStatus.model_validate(record)
    except (PrimaryUnavailableError, ValueError) as exc:
        _logger.warning("Sync status read failed: %s", exc)
        return _default_status(str(exc))
    ctx.cache.set(SYNC_STATUS_CACHE_KEY, status, ctx.ttls.sync_status)
    return status
