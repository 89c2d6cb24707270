"""Live subscription manager.

Consumers register interest in a (collection, query) pair and get the
full result set on every change. Registrations with the same collection,
query and mode share one backend subscription, which is cancelled when
its last listener leaves.

A listener's lifecycle::

    UNSUBSCRIBED -> SUBSCRIBING -> ACTIVE -> (ERROR | UNSUBSCRIBED)

``ERROR`` is terminal for that registration: transport failures are
delivered once and never retried automatically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pairsync._livestore import ErrorCallback, LiveStore, SnapshotCallback
from pairsync.exceptions import SecondaryUnavailableError, SubscriptionError
from pairsync.query import QueryShape

_logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class SubscriptionKey:
    collection: str
    query: QueryShape
    live: bool = True

    def __str__(self) -> str:
        mode = "live" if self.live else "once"
        return f"{self.collection}[{self.query.signature()}]({mode})"


@dataclass(eq=False)
class _Registration:
    """One backend subscription shared by every listener with the same key."""

    key: SubscriptionKey
    state: SubscriptionState = SubscriptionState.SUBSCRIBING
    handles: list[SubscriptionHandle] = field(default_factory=list)
    cancel_backend: Callable[[], None] | None = None
    task: asyncio.Task[None] | None = None
    last_snapshot: list[dict[str, Any]] | None = None


class SubscriptionHandle:
    """A single listener's registration.

    :meth:`cancel` is idempotent and never raises.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        registration: _Registration,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._manager = manager
        self._registration = registration
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._cancelled = False

    @property
    def key(self) -> SubscriptionKey:
        return self._registration.key

    @property
    def state(self) -> SubscriptionState:
        if self._cancelled:
            return SubscriptionState.UNSUBSCRIBED
        return self._registration.state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        try:
            self._manager._release(self._registration, self)
        except Exception:
            _logger.exception("Releasing subscription %s failed", self.key)

    def _deliver(self, snapshot: list[dict[str, Any]]) -> None:
        if self._cancelled:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception:
            _logger.exception("Snapshot listener for %s failed", self.key)

    def _fail(self, error: BaseException) -> None:
        if self._cancelled:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.exception("Error listener for %s failed", self.key)

    def __repr__(self) -> str:
        return f"SubscriptionHandle({self.key}, state={self.state.value})"


class SubscriptionManager:
    """Deduplicates live store subscriptions and fans snapshots out."""

    def __init__(self, store: LiveStore) -> None:
        self._store = store
        self._registrations: dict[SubscriptionKey, _Registration] = {}
        self._slots: list[SubscriptionSlot] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        """Refresh generation; bumped by :meth:`refresh`."""
        return self._generation

    @property
    def active_count(self) -> int:
        """Number of backend subscriptions currently held."""
        return len(self._registrations)

    def subscribe(
        self,
        collection: str,
        query: QueryShape,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        *,
        live: bool = True,
    ) -> SubscriptionHandle:
        """Register a listener; must be called from the event loop."""
        key = SubscriptionKey(collection, query, live)
        loop = asyncio.get_running_loop()
        registration = self._registrations.get(key)
        if registration is not None:
            handle = SubscriptionHandle(self, registration, on_snapshot, on_error)
            registration.handles.append(handle)
            if registration.last_snapshot is not None:
                loop.call_soon(handle._deliver, registration.last_snapshot)
            _logger.debug("Joined subscription %s (%d listeners)", key, len(registration.handles))
            return handle

        registration = _Registration(key=key)
        handle = SubscriptionHandle(self, registration, on_snapshot, on_error)
        registration.handles.append(handle)
        self._registrations[key] = registration
        _logger.debug("Opening subscription %s", key)

        if not live:
            registration.task = loop.create_task(self._read_once(registration))
            return handle
        try:
            registration.cancel_backend = self._store.listen(
                collection,
                query,
                lambda snapshot: self._on_snapshot(registration, snapshot),
                lambda error: self._on_error(registration, error),
            )
        except Exception as exc:
            _logger.warning("Opening subscription %s failed: %s", key, exc)
            error = SubscriptionError(f"Subscribing to {collection} failed: {exc}", collection=collection)
            loop.call_soon(self._on_error, registration, error)
        return handle

    def refresh(self) -> None:
        """Bump the refresh generation and re-establish every slot."""
        self._generation += 1
        for slot in list(self._slots):
            slot._resubscribe()

    def close(self) -> None:
        """Cancel every subscription and detach every slot."""
        for slot in list(self._slots):
            slot.close()
        for registration in list(self._registrations.values()):
            for handle in list(registration.handles):
                handle.cancel()

    def slot(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        *,
        live: bool = True,
    ) -> SubscriptionSlot:
        slot = SubscriptionSlot(self, collection, on_snapshot, on_error, live=live)
        self._slots.append(slot)
        return slot

    # ------------------------------------------------------------------
    # Backend callbacks
    # ------------------------------------------------------------------

    async def _read_once(self, registration: _Registration) -> None:
        key = registration.key
        try:
            snapshot = await self._store.get(key.collection, key.query)
        except SecondaryUnavailableError as exc:
            self._on_error(registration, SubscriptionError(str(exc), collection=key.collection))
            return
        registration.state = SubscriptionState.ACTIVE
        for handle in list(registration.handles):
            handle._deliver(snapshot)
        registration.state = SubscriptionState.UNSUBSCRIBED
        self._forget(registration)

    def _on_snapshot(self, registration: _Registration, snapshot: list[dict[str, Any]]) -> None:
        if registration.state in (SubscriptionState.ERROR, SubscriptionState.UNSUBSCRIBED):
            return
        registration.state = SubscriptionState.ACTIVE
        registration.last_snapshot = snapshot
        for handle in list(registration.handles):
            handle._deliver(snapshot)

    def _on_error(self, registration: _Registration, error: BaseException) -> None:
        if registration.state in (SubscriptionState.ERROR, SubscriptionState.UNSUBSCRIBED):
            return
        _logger.warning("Subscription %s failed: %s", registration.key, error)
        registration.state = SubscriptionState.ERROR
        self._forget(registration)
        self._stop_backend(registration)
        for handle in list(registration.handles):
            handle._fail(error)

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def _release(self, registration: _Registration, handle: SubscriptionHandle) -> None:
        if handle in registration.handles:
            registration.handles.remove(handle)
        if registration.handles:
            return
        if registration.state not in (SubscriptionState.ERROR, SubscriptionState.UNSUBSCRIBED):
            registration.state = SubscriptionState.UNSUBSCRIBED
        self._forget(registration)
        self._stop_backend(registration)
        _logger.debug("Closed subscription %s", registration.key)

    def _forget(self, registration: _Registration) -> None:
        if self._registrations.get(registration.key) is registration:
            del self._registrations[registration.key]

    @staticmethod
    def _stop_backend(registration: _Registration) -> None:
        cancel, registration.cancel_backend = registration.cancel_backend, None
        if cancel is not None:
            try:
                cancel()
            except Exception:
                _logger.exception("Backend cancel for %s failed", registration.key)
        task, registration.task = registration.task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _drop_slot(self, slot: SubscriptionSlot) -> None:
        with contextlib.suppress(ValueError):
            self._slots.remove(slot)


class SubscriptionSlot:
    """Holds at most one subscription whose query may change over time.

    :meth:`update` replaces the subscription when the query differs, and
    :meth:`SubscriptionManager.refresh` replaces it on a refresh bump. The
    previous registration is always cancelled before the new one is
    created, so a slot never delivers from two subscriptions at once.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        collection: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        *,
        live: bool = True,
    ) -> None:
        self._manager = manager
        self._collection = collection
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._live = live
        self._query: QueryShape | None = None
        self._generation = -1
        self._handle: SubscriptionHandle | None = None
        self._closed = False

    @property
    def handle(self) -> SubscriptionHandle | None:
        return self._handle

    @property
    def query(self) -> QueryShape | None:
        return self._query

    def update(self, query: QueryShape) -> SubscriptionHandle:
        """Point the slot at *query*, re-subscribing only when something changed."""
        if self._closed:
            raise SubscriptionError("Slot is closed", collection=self._collection)
        handle = self._handle
        if (
            handle is not None
            and query == self._query
            and self._generation == self._manager.generation
            and handle.state is not SubscriptionState.ERROR
        ):
            return handle
        self._query = query
        return self._resubscribe()

    def _resubscribe(self) -> SubscriptionHandle:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._query is None:
            raise SubscriptionError("Slot has no query", collection=self._collection)
        self._generation = self._manager.generation
        self._handle = self._manager.subscribe(
            self._collection,
            self._query,
            self._on_snapshot,
            self._on_error,
            live=self._live,
        )
        return self._handle

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._manager._drop_slot(self)


class SnapshotStream:
    """Async iterator over a subscription's snapshots.

    Ends after the single snapshot of a one-time read; raises the
    delivered error of a failed subscription.
    """

    def __init__(self, *, live: bool) -> None:
        self._live = live
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._done = False

    def _push(self, snapshot: list[dict[str, Any]]) -> None:
        self._queue.put_nowait(("snapshot", snapshot))
        if not self._live:
            self._queue.put_nowait(("end", None))

    def _fail(self, error: BaseException) -> None:
        self._queue.put_nowait(("error", error))

    def __aiter__(self) -> SnapshotStream:
        return self

    async def __anext__(self) -> list[dict[str, Any]]:
        if self._done:
            raise StopAsyncIteration
        kind, value = await self._queue.get()
        if kind == "snapshot":
            return value
        self._done = True
        if kind == "error":
            raise value
        raise StopAsyncIteration


@contextlib.asynccontextmanager
async def acquire_subscription(
    manager: SubscriptionManager,
    collection: str,
    query: QueryShape,
    *,
    live: bool = True,
) -> AsyncIterator[SnapshotStream]:
    """Scoped subscription: released on every exit path.

    Usage::

        async with acquire_subscription(manager, "botEvents", QueryShape.latest(limit=5)) as stream:
            async for snapshot in stream:
                ...
    """
    stream = SnapshotStream(live=live)
    handle = manager.subscribe(collection, query, stream._push, stream._fail, live=live)
    try:
        yield stream
    finally:
        handle.cancel()
