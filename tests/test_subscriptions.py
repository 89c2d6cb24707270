from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pairsync.exceptions import SubscriptionError
from pairsync.query import QueryShape
from pairsync.subscriptions import SubscriptionManager, SubscriptionState, acquire_subscription

from conftest import FakeStore


class _Sink:
    def __init__(self) -> None:
        self.snapshots: list[list[dict[str, Any]]] = []
        self.errors: list[BaseException] = []

    def data(self, snapshot: list[dict[str, Any]]) -> None:
        self.snapshots.append(snapshot)

    def error(self, exc: BaseException) -> None:
        self.errors.append(exc)


@pytest.mark.asyncio
async def test_same_key_shares_one_backend_subscription(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.collections["botEvents"] = [{"id": "e1", "timestamp": 1}]
    first, second = _Sink(), _Sink()

    h1 = manager.subscribe("botEvents", QueryShape.latest(limit=5), first.data, first.error)
    h2 = manager.subscribe("botEvents", QueryShape.latest(limit=5), second.data, second.error)

    assert len(store.active("botEvents")) == 1
    assert manager.active_count == 1
    assert h1.state is SubscriptionState.SUBSCRIBING

    store.push("botEvents")

    assert first.snapshots == [[{"id": "e1", "timestamp": 1}]]
    assert second.snapshots == first.snapshots
    assert h2.state is SubscriptionState.ACTIVE


@pytest.mark.asyncio
async def test_late_listener_gets_last_snapshot(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.collections["trades"] = [{"id": "t1", "timestamp": 1}]
    early, late = _Sink(), _Sink()
    manager.subscribe("trades", QueryShape.latest(), early.data, early.error)
    store.push("trades")

    manager.subscribe("trades", QueryShape.latest(), late.data, late.error)
    await asyncio.sleep(0)

    assert late.snapshots == early.snapshots


@pytest.mark.asyncio
async def test_backend_cancelled_when_last_listener_leaves(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    h1 = manager.subscribe("trades", QueryShape.latest(), sink.data, sink.error)
    h2 = manager.subscribe("trades", QueryShape.latest(), sink.data, sink.error)

    h1.cancel()
    assert len(store.active("trades")) == 1

    h2.cancel()
    assert store.active("trades") == []
    assert manager.active_count == 0
    assert h2.state is SubscriptionState.UNSUBSCRIBED


@pytest.mark.asyncio
async def test_cancel_is_idempotent(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    handle = manager.subscribe("trades", QueryShape.latest(), sink.data, sink.error)

    handle.cancel()
    handle.cancel()
    handle.cancel()

    assert store.listeners[0].cancel_calls == 1
    store.collections["trades"] = [{"id": "t1", "timestamp": 1}]
    store.listeners[0].on_snapshot([{"id": "t1"}])
    assert sink.snapshots == []


@pytest.mark.asyncio
async def test_transport_error_delivered_once_and_not_retried(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    handle = manager.subscribe("botEvents", QueryShape.latest(), sink.data, sink.error)
    listener = store.listeners[0]

    error = SubscriptionError("connection lost", collection="botEvents")
    listener.on_error(error)
    listener.on_error(error)
    listener.on_snapshot([{"id": "late"}])

    assert sink.errors == [error]
    assert sink.snapshots == []
    assert handle.state is SubscriptionState.ERROR
    assert len(store.listeners) == 1
    assert listener.cancelled

    handle.cancel()
    assert handle.state is SubscriptionState.UNSUBSCRIBED


@pytest.mark.asyncio
async def test_fresh_subscribe_after_error_creates_new_backend(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    manager.subscribe("botEvents", QueryShape.latest(), sink.data, sink.error)
    store.break_connection("botEvents", SubscriptionError("down"))

    handle = manager.subscribe("botEvents", QueryShape.latest(), sink.data, sink.error)

    assert len(store.listeners) == 2
    assert handle.state is SubscriptionState.SUBSCRIBING


@pytest.mark.asyncio
async def test_listener_exceptions_are_contained(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    good = _Sink()

    def _boom(_snapshot: list[dict[str, Any]]) -> None:
        raise RuntimeError("listener bug")

    manager.subscribe("trades", QueryShape(), _boom, good.error)
    manager.subscribe("trades", QueryShape(), good.data, good.error)
    store.collections["trades"] = [{"id": "t1"}]
    store.push("trades")

    assert good.snapshots == [[{"id": "t1"}]]


@pytest.mark.asyncio
async def test_slot_update_replaces_subscription(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    slot = manager.slot("trades", sink.data, sink.error)
    store.collections["trades"] = [
        {"id": "t1", "status": "open", "timestamp": 2},
        {"id": "t2", "status": "closed", "timestamp": 1},
    ]

    first = slot.update(QueryShape.latest(status="open"))
    assert slot.update(QueryShape.latest(status="open")) is first

    second = slot.update(QueryShape.latest(status="closed"))

    assert first.state is SubscriptionState.UNSUBSCRIBED
    assert second is not first
    assert len(store.active("trades")) == 1
    assert manager.active_count == 1

    store.push("trades")
    assert sink.snapshots == [[{"id": "t2", "status": "closed", "timestamp": 1}]]


@pytest.mark.asyncio
async def test_refresh_reestablishes_slots(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    slot = manager.slot("botEvents", sink.data, sink.error)
    before = slot.update(QueryShape.latest())

    manager.refresh()

    assert manager.generation == 1
    assert before.state is SubscriptionState.UNSUBSCRIBED
    assert slot.handle is not None and slot.handle is not before
    assert len(store.listeners) == 2
    assert len(store.active("botEvents")) == 1


@pytest.mark.asyncio
async def test_closed_slot_rejects_updates(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    sink = _Sink()
    slot = manager.slot("trades", sink.data, sink.error)
    slot.update(QueryShape())
    slot.close()
    slot.close()

    assert store.active() == []
    with pytest.raises(SubscriptionError):
        slot.update(QueryShape())


@pytest.mark.asyncio
async def test_one_time_read_delivers_once_and_ends_unsubscribed(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.collections["accountMetrics"] = [{"id": "m1", "timestamp": 1}]
    sink = _Sink()

    handle = manager.subscribe("accountMetrics", QueryShape.latest(limit=1), sink.data, sink.error, live=False)
    await asyncio.sleep(0)

    assert sink.snapshots == [[{"id": "m1", "timestamp": 1}]]
    assert handle.state is SubscriptionState.UNSUBSCRIBED
    assert store.listeners == []
    assert manager.active_count == 0


@pytest.mark.asyncio
async def test_one_time_read_failure_goes_to_on_error(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.failing.add("trades")
    sink = _Sink()

    handle = manager.subscribe("trades", QueryShape(), sink.data, sink.error, live=False)
    await asyncio.sleep(0)

    assert len(sink.errors) == 1
    assert isinstance(sink.errors[0], SubscriptionError)
    assert handle.state is SubscriptionState.ERROR


@pytest.mark.asyncio
async def test_acquire_subscription_releases_on_exit(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.collections["botEvents"] = [{"id": "e1", "timestamp": 1}]

    async with acquire_subscription(manager, "botEvents", QueryShape.latest()) as stream:
        store.push("botEvents")
        snapshot = await stream.__anext__()
        assert snapshot == [{"id": "e1", "timestamp": 1}]
        assert len(store.active("botEvents")) == 1

    assert store.active() == []


@pytest.mark.asyncio
async def test_acquire_subscription_releases_on_error(store: FakeStore) -> None:
    manager = SubscriptionManager(store)

    with pytest.raises(SubscriptionError):
        async with acquire_subscription(manager, "botEvents", QueryShape.latest()) as stream:
            store.break_connection("botEvents", SubscriptionError("down"))
            async for _snapshot in stream:
                pass

    assert store.active() == []
    assert manager.active_count == 0


@pytest.mark.asyncio
async def test_acquire_one_time_stream_ends(store: FakeStore) -> None:
    manager = SubscriptionManager(store)
    store.collections["trades"] = [{"id": "t1"}]

    async with acquire_subscription(manager, "trades", QueryShape(), live=False) as stream:
        snapshots = [snapshot async for snapshot in stream]

    assert snapshots == [[{"id": "t1"}]]
