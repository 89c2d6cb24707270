from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import pytest

from pairsync._api._common import DataContext
from pairsync._cache import TtlCache
from pairsync._retry import RetryPolicy
from pairsync.exceptions import PrimaryUnavailableError, SecondaryUnavailableError
from pairsync.query import QueryShape


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Primary transport double.

    Responses are queued per endpoint; an exception instance is raised
    instead of returned. The last queued response repeats.
    """

    def __init__(self) -> None:
        self._responses: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def respond(self, endpoint: str, *responses: Any) -> None:
        self._responses[endpoint] = list(responses)

    def fail(self, endpoint: str, *, status_code: int = 503, transient: bool = True) -> None:
        self.respond(
            endpoint,
            PrimaryUnavailableError(
                f"HTTP {status_code}",
                status_code=status_code,
                endpoint=endpoint,
                transient=transient,
            ),
        )

    def count(self, method: str, endpoint: str) -> int:
        return sum(1 for m, e, _ in self.calls if m == method and e == endpoint)

    def _next(self, endpoint: str) -> Any:
        queued = self._responses.get(endpoint)
        if not queued:
            raise PrimaryUnavailableError(f"no response for {endpoint}", status_code=404, endpoint=endpoint)
        result = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        self.calls.append(("GET", endpoint, dict(params or {})))
        return self._next(endpoint)

    async def post_json(self, endpoint: str, payload: Mapping[str, Any] | None = None) -> Any:
        self.calls.append(("POST", endpoint, dict(payload or {})))
        return self._next(endpoint)


@dataclass(eq=False)
class FakeListener:
    collection: str
    query: QueryShape
    on_snapshot: Callable[[list[dict[str, Any]]], None]
    on_error: Callable[[BaseException], None]
    cancelled: bool = False
    cancel_calls: int = 0


class FakeStore:
    """Live store double holding flat records per collection."""

    def __init__(self) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self.listeners: list[FakeListener] = []
        self.reads: list[tuple[str, QueryShape]] = []

    async def get(self, collection: str, query: QueryShape) -> list[dict[str, Any]]:
        self.reads.append((collection, query))
        if collection in self.failing:
            raise SecondaryUnavailableError(f"{collection} unavailable", collection=collection)
        return query.apply(self.collections.get(collection, []))

    def listen(
        self,
        collection: str,
        query: QueryShape,
        on_snapshot: Callable[[list[dict[str, Any]]], None],
        on_error: Callable[[BaseException], None],
    ) -> Callable[[], None]:
        listener = FakeListener(collection, query, on_snapshot, on_error)
        self.listeners.append(listener)

        def _cancel() -> None:
            listener.cancel_calls += 1
            listener.cancelled = True

        return _cancel

    def active(self, collection: str | None = None) -> list[FakeListener]:
        return [
            listener
            for listener in self.listeners
            if not listener.cancelled and (collection is None or listener.collection == collection)
        ]

    def push(self, collection: str) -> None:
        for listener in self.active(collection):
            listener.on_snapshot(listener.query.apply(self.collections.get(collection, [])))

    def break_connection(self, collection: str, error: BaseException) -> None:
        for listener in self.active(collection):
            listener.on_error(error)


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def ctx(clock: FakeClock, transport: FakeTransport, store: FakeStore) -> DataContext:
    return DataContext(
        cache=TtlCache(clock=clock),
        transport=transport,
        store=store,
        retry_policy=RetryPolicy(max_retries=3, base_delay=1.0, max_delay=30.0),
        sleep=no_sleep,
    )
