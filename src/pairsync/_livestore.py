"""Live document store: one-time HTTP reads and MQTT push listeners.

The store exposes each collection over two channels:

- ``GET {store_url}/collections/{name}/documents`` returns the current
  documents as ``[{"id": ..., "data": {...}}, ...]``.
- Topic ``{prefix}/{name}`` carries one message per document change,
  ``{"id": ..., "data": {...}}`` or ``{"id": ..., "deleted": true}``.

Listeners get the full query result on every change (never deltas). The
document map for a collection is primed with a one-time read when its
first listener attaches and dropped when its last listener leaves.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, cast

import aiohttp
import paho.mqtt.client as mqtt

from pairsync._constants import USER_AGENT
from pairsync._redact import redact_for_log
from pairsync.config import PairsyncConfig
from pairsync.exceptions import PairsyncError, SecondaryUnavailableError, SubscriptionError
from pairsync.models._base import flatten_document
from pairsync.query import QueryShape

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


class LiveStore(Protocol):
    """Structural interface of the secondary source."""

    async def get(self, collection: str, query: QueryShape) -> list[dict[str, Any]]:
        ...

    def listen(
        self,
        collection: str,
        query: QueryShape,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        ...


@dataclass(frozen=True)
class DocumentChange:
    """A decoded change message for one document."""

    collection: str
    doc_id: str
    data: dict[str, Any] | None
    """``None`` when the document was deleted."""


def decode_change(collection: str, payload: bytes) -> DocumentChange:
    """Decode an MQTT change message."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise PairsyncError("Change message is not a JSON object")
    doc_id = parsed.get("id")
    if not isinstance(doc_id, (str, int)) or str(doc_id) == "":
        raise PairsyncError("Change message missing document id")
    if parsed.get("deleted") is True:
        return DocumentChange(collection=collection, doc_id=str(doc_id), data=None)
    data = parsed.get("data")
    if not isinstance(data, dict):
        raise PairsyncError("Change message missing data object")
    return DocumentChange(collection=collection, doc_id=str(doc_id), data=data)


def _documents_from_body(body: Any) -> list[dict[str, Any]]:
    items = body.get("documents") if isinstance(body, dict) else body
    if not isinstance(items, list):
        raise ValueError("expected a list of documents")
    return [flatten_document(item) for item in items if isinstance(item, dict)]


class LiveStoreMqttRuntime:
    """Threaded paho-mqtt runtime that emits change events onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        config: PairsyncConfig,
        on_change: Callable[[DocumentChange], None],
        on_connection_lost: Callable[[str], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._config = config
        self._on_change = on_change
        self._on_connection_lost = on_connection_lost
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._topics: set[str] = set()
        self._prefix = config.mqtt_topic_prefix.rstrip("/")

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def topic_for(self, collection: str) -> str:
        return f"{self._prefix}/{collection}"

    def _collection_for(self, topic: str) -> str:
        return topic[len(self._prefix) + 1 :] if topic.startswith(f"{self._prefix}/") else topic

    def start(self) -> None:
        """Connect to the broker and start the network loop (blocking connect)."""
        self.stop()
        host = self._config.mqtt_host
        if not host:
            raise PairsyncError("No live store broker configured (mqtt_host)")
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s prefix=%s",
            host,
            self._config.mqtt_port,
            self._prefix,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if self._config.mqtt_username:
            client.username_pw_set(self._config.mqtt_username, self._config.mqtt_password)
        if self._config.mqtt_tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            for topic in sorted(self._topics):
                c.subscribe(topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            collection = self._collection_for(msg.topic)
            try:
                change = decode_change(collection, msg.payload)
            except (PairsyncError, ValueError):
                self._logger.debug("MQTT change decode failure topic=%s", msg.topic, exc_info=True)
                return
            self._loop.call_soon_threadsafe(self._on_change, change)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)
                self._loop.call_soon_threadsafe(self._on_connection_lost, str(reason_code))

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(host, self._config.mqtt_port, keepalive=self._config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def subscribe(self, collection: str) -> None:
        topic = self.topic_for(collection)
        if topic in self._topics:
            return
        self._topics.add(topic)
        if self._client is not None:
            self._client.subscribe(topic, qos=1)

    def unsubscribe(self, collection: str) -> None:
        topic = self.topic_for(collection)
        if topic not in self._topics:
            return
        self._topics.discard(topic)
        if self._client is not None:
            self._client.unsubscribe(topic)

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


@dataclass(eq=False)
class _Listener:
    query: QueryShape
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


@dataclass
class _CollectionFeed:
    """Document map and listeners for one collection."""

    documents: dict[str, dict[str, Any]] = field(default_factory=dict)
    listeners: list[_Listener] = field(default_factory=list)
    primed: bool = False
    pending: list[DocumentChange] = field(default_factory=list)
    prime_task: asyncio.Task[None] | None = None

    def apply(self, change: DocumentChange) -> None:
        if change.data is None:
            self.documents.pop(change.doc_id, None)
        else:
            self.documents[change.doc_id] = {**change.data, "id": change.doc_id}


class MqttLiveStore:
    """Secondary source backed by the store's HTTP reads and MQTT change feed."""

    def __init__(
        self,
        config: PairsyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        runtime: LiveStoreMqttRuntime | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._loop = loop
        self._runtime = runtime
        self._feeds: dict[str, _CollectionFeed] = {}
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def push_available(self) -> bool:
        return self._runtime is not None and self._runtime.is_running

    async def start(self) -> None:
        """Best-effort push startup (failures must not break one-time reads)."""
        if not self._config.live_enabled or not self._config.mqtt_host:
            return
        if self.push_available:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        runtime = self._runtime or LiveStoreMqttRuntime(
            loop=loop,
            config=self._config,
            on_change=self._on_change,
            on_connection_lost=self._on_connection_lost,
            logger=_logger,
        )
        try:
            await loop.run_in_executor(None, runtime.start)
            self._runtime = runtime
        except Exception:
            _logger.warning("Live store push startup failed", exc_info=True)

    async def close(self) -> None:
        self._fail_all(SubscriptionError("Live store closed"))
        runtime = self._runtime
        self._runtime = None
        if runtime is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, runtime.stop)
        except Exception:
            _logger.debug("MQTT runtime stop failed", exc_info=True)

    # ------------------------------------------------------------------
    # One-time reads
    # ------------------------------------------------------------------

    async def _read_collection(self, collection: str, query: QueryShape | None = None) -> list[dict[str, Any]]:
        url = f"{self._config.store_url.rstrip('/')}/collections/{collection}/documents"
        headers = {"accept": "application/json", "user-agent": USER_AGENT}
        if self._config.store_token:
            headers["authorization"] = f"Bearer {self._config.store_token}"
        params: dict[str, str] = {}
        if query is not None:
            # Server-side hints only; the query is always re-applied locally.
            if query.order_by is not None:
                params["orderBy"] = query.order_by.field
                params["direction"] = query.order_by.direction.value
            for clause in query.where:
                params[f"where.{clause.field}"] = json.dumps(clause.value)

        _logger.debug("GET %s params=%s headers=%s", url, params, redact_for_log(headers))
        try:
            async with self._http.get(url, params=params or None, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SecondaryUnavailableError(
                        f"HTTP {resp.status} reading {collection}: {text[:200]}",
                        collection=collection,
                    )
        except SecondaryUnavailableError:
            raise
        except asyncio.TimeoutError as exc:
            raise SecondaryUnavailableError(f"Reading {collection} timed out", collection=collection) from exc
        except aiohttp.ClientError as exc:
            raise SecondaryUnavailableError(f"Reading {collection} failed: {exc}", collection=collection) from exc

        try:
            return _documents_from_body(json.loads(text))
        except (json.JSONDecodeError, ValueError) as exc:
            raise SecondaryUnavailableError(
                f"Invalid document list for {collection}: {text[:200]}",
                collection=collection,
            ) from exc

    async def get(self, collection: str, query: QueryShape) -> list[dict[str, Any]]:
        """One-time (non-subscribing) read of *collection* filtered by *query*."""
        documents = await self._read_collection(collection, query)
        return query.apply(documents)

    # ------------------------------------------------------------------
    # Push listeners
    # ------------------------------------------------------------------

    def listen(
        self,
        collection: str,
        query: QueryShape,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Attach a listener; returns an idempotent unsubscribe callable."""
        listener = _Listener(query=query, on_snapshot=on_snapshot, on_error=on_error)
        runtime = self._runtime
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop

        if runtime is None or not runtime.is_running:
            loop.call_soon(
                self._deliver_error,
                listener,
                SubscriptionError(f"Live updates unavailable for {collection}", collection=collection),
            )
            return lambda: None

        feed = self._feeds.get(collection)
        if feed is None:
            feed = _CollectionFeed()
            self._feeds[collection] = feed
            runtime.subscribe(collection)
            feed.prime_task = loop.create_task(self._prime(collection, feed))
        feed.listeners.append(listener)
        if feed.primed:
            loop.call_soon(self._deliver_to, feed, listener)

        def _unsubscribe() -> None:
            self._detach(collection, listener)

        return _unsubscribe

    def _detach(self, collection: str, listener: _Listener) -> None:
        feed = self._feeds.get(collection)
        if feed is None or listener not in feed.listeners:
            return
        feed.listeners.remove(listener)
        if feed.listeners:
            return
        self._drop_feed(collection, feed)

    def _drop_feed(self, collection: str, feed: _CollectionFeed) -> None:
        if self._feeds.get(collection) is feed:
            del self._feeds[collection]
        task = feed.prime_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        runtime = self._runtime
        if runtime is not None:
            with contextlib.suppress(Exception):
                runtime.unsubscribe(collection)

    async def _prime(self, collection: str, feed: _CollectionFeed) -> None:
        try:
            documents = await self._read_collection(collection)
        except SecondaryUnavailableError as exc:
            _logger.warning("Priming live feed for %s failed: %s", collection, exc)
            error = SubscriptionError(f"Initial read of {collection} failed: {exc}", collection=collection)
            listeners = list(feed.listeners)
            feed.listeners.clear()
            self._drop_feed(collection, feed)
            for listener in listeners:
                self._deliver_error(listener, error)
            return

        feed.documents = {str(doc.get("id")): doc for doc in documents if doc.get("id") is not None}
        for change in feed.pending:
            feed.apply(change)
        feed.pending.clear()
        feed.primed = True
        _logger.debug("Live feed %s primed with %d documents", collection, len(feed.documents))
        self._broadcast(feed)

    def _on_change(self, change: DocumentChange) -> None:
        feed = self._feeds.get(change.collection)
        if feed is None:
            return
        if not feed.primed:
            feed.pending.append(change)
            return
        feed.apply(change)
        self._broadcast(feed)

    def _on_connection_lost(self, reason: str) -> None:
        self._fail_all(SubscriptionError(f"Live store connection lost: {reason}"))

    def _fail_all(self, error: SubscriptionError) -> None:
        feeds = list(self._feeds.items())
        for collection, feed in feeds:
            listeners = list(feed.listeners)
            feed.listeners.clear()
            self._drop_feed(collection, feed)
            for listener in listeners:
                self._deliver_error(listener, SubscriptionError(str(error), collection=collection))

    def _broadcast(self, feed: _CollectionFeed) -> None:
        for listener in list(feed.listeners):
            self._deliver_to(feed, listener)

    def _deliver_to(self, feed: _CollectionFeed, listener: _Listener) -> None:
        if listener not in feed.listeners:
            return
        snapshot = listener.query.apply(feed.documents.values())
        try:
            listener.on_snapshot(snapshot)
        except Exception:
            _logger.exception("Live snapshot listener failed")

    @staticmethod
    def _deliver_error(listener: _Listener, error: BaseException) -> None:
        try:
            listener.on_error(error)
        except Exception:
            _logger.exception("Live error listener failed")
