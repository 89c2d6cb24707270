"""Owner of the reconciliation status."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pairsync._constants import COLLECTION_BOT_EVENTS, POSITION_SYNC_COMPLETED
from pairsync.exceptions import ReconciliationError
from pairsync.ingestion.normalize import first_present, safe_int
from pairsync.models.bot_event import BotEvent
from pairsync.models.sync import SyncPhase, SyncResult, SyncStatus
from pairsync.query import QueryShape
from pairsync.state.sync import ExternalUpdate, SyncAction, SyncFailure, SyncStart, SyncSuccess, reduce_sync
from pairsync.subscriptions import SubscriptionManager, SubscriptionSlot

_logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


def latest_sync_event(events: list[BotEvent]) -> BotEvent | None:
    """Newest ``position_sync_completed`` event, if any."""
    completed = [event for event in events if event.type == POSITION_SYNC_COMPLETED and event.timestamp is not None]
    if not completed:
        return None
    return max(completed, key=lambda event: event.timestamp or datetime.min.replace(tzinfo=UTC))


class SyncStateMachine:
    """Drives :func:`reduce_sync` and performs its side effects.

    ``trigger`` performs the reconciliation write and must not raise on
    transport failure (see :func:`pairsync._api.sync.trigger_reconciliation`).
    """

    def __init__(
        self,
        trigger: Callable[[], Awaitable[SyncResult]],
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._trigger = trigger
        self._clock = clock
        self._status = SyncStatus()
        self._listeners: list[StatusListener] = []
        self._feed: SubscriptionSlot | None = None

    @property
    def status(self) -> SyncStatus:
        return self._status

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Call *listener* after every transition; returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def dispatch(self, action: SyncAction) -> SyncStatus:
        previous = self._status
        self._status = reduce_sync(previous, action)
        if self._status is not previous:
            _logger.debug(
                "Sync %s -> %s via %s",
                previous.phase.value,
                self._status.phase.value,
                type(action).__name__,
            )
            for listener in list(self._listeners):
                try:
                    listener(self._status)
                except Exception:
                    _logger.exception("Sync status listener failed")
        return self._status

    async def trigger_sync(self) -> SyncResult:
        """Request a reconciliation pass and record its outcome.

        While a pass is already running the request is not sent again and
        an ``in_progress`` result is returned.
        """
        if self._status.phase is SyncPhase.SYNCING:
            return SyncResult(status="in_progress", message="Position sync already in progress")
        self.dispatch(SyncStart())
        try:
            result = await self._trigger()
        except Exception as exc:
            self.dispatch(SyncFailure(ReconciliationError(str(exc))))
            raise
        if result.ok:
            self.dispatch(SyncSuccess(last_synced=result.timestamp or self._clock(), sync_actions=result.sync_actions))
        else:
            self.dispatch(SyncFailure(ReconciliationError(result.message or "Position sync failed")))
        return result

    # ------------------------------------------------------------------
    # Passive feed
    # ------------------------------------------------------------------

    def apply_events(self, events: list[BotEvent]) -> None:
        """Fold a bot event snapshot into the status.

        Only a completed-sync event newer than the last known pass
        produces a transition, so repeated snapshots are harmless.
        """
        event = latest_sync_event(events)
        if event is None:
            return
        last = self._status.last_synced
        if last is not None and event.timestamp is not None and event.timestamp <= last:
            return
        actions = safe_int(first_present(event.data, "syncActions", "sync_actions", "actions")) or 0
        self.dispatch(ExternalUpdate(last_synced=event.timestamp, sync_actions=actions))

    def _on_feed_snapshot(self, records: list[dict[str, Any]]) -> None:
        self.apply_events([BotEvent.model_validate(record) for record in records])

    def _on_feed_error(self, error: BaseException) -> None:
        _logger.warning("Passive sync feed stopped until the next refresh: %s", error)

    def attach_feed(self, manager: SubscriptionManager) -> SubscriptionSlot:
        """Listen to the bot event log for backend-side reconciliations.

        The feed lives in a slot, so a refresh re-establishes it after a
        transport failure.
        """
        self.detach_feed()
        slot = manager.slot(COLLECTION_BOT_EVENTS, self._on_feed_snapshot, self._on_feed_error)
        slot.update(QueryShape.latest())
        self._feed = slot
        return slot

    def detach_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is not None:
            feed.close()

    @property
    def feed(self) -> SubscriptionSlot | None:
        return self._feed
