"""Shared helpers for entity fetch modules.

This module centralizes the dual-source read path:
- the :class:`EntitySource` interface every entity implements
- cache lookup, primary read with retry, secondary fallback
- payload shape checks that map to non-transient failures

It is internal to pairsync and may change at any time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from pairsync._cache import TtlCache
from pairsync._livestore import LiveStore
from pairsync._retry import RetryPolicy, call_with_retry
from pairsync._transport import PrimaryTransport
from pairsync.config import CacheTtls
from pairsync.exceptions import FetchError, PrimaryUnavailableError, SecondaryUnavailableError
from pairsync.models._base import flatten_document

_logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class EntitySource(Protocol[T_co]):
    """One entity kind readable from both sources.

    ``fetch_primary`` and ``fetch_secondary`` return flat records in
    whatever legacy shape the source holds; ``normalize`` turns them into
    the canonical model and is the only place that does so.
    """

    entity: str

    async def fetch_primary(self) -> Any:
        ...

    async def fetch_secondary(self) -> Any:
        ...

    def normalize(self, records: Any) -> T_co:
        ...


@dataclass
class DataContext:
    """Everything a fetch function needs, owned by the client."""

    cache: TtlCache
    transport: PrimaryTransport
    store: LiveStore
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    ttls: CacheTtls = field(default_factory=CacheTtls)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def expect_records(body: Any, *, endpoint: str, keys: Iterable[str] = ()) -> list[dict[str, Any]]:
    """Extract a list of records from a primary response.

    Accepts a bare list or an object wrapping the list under one of *keys*.
    Anything else is an unexpected shape and is not retried.
    """
    items = body
    if isinstance(body, dict):
        for key in keys:
            if isinstance(body.get(key), list):
                items = body[key]
                break
    if not isinstance(items, list):
        raise PrimaryUnavailableError(
            f"Unexpected payload shape from {endpoint}: {type(body).__name__}",
            endpoint=endpoint,
        )
    return [flatten_document(item) for item in items if isinstance(item, dict)]


def expect_object(body: Any, *, endpoint: str, keys: Iterable[str] = ()) -> dict[str, Any]:
    """Extract a single record from a primary response (optionally wrapped)."""
    if isinstance(body, dict):
        for key in keys:
            if isinstance(body.get(key), dict):
                return dict(body[key])
        return dict(body)
    raise PrimaryUnavailableError(
        f"Unexpected payload shape from {endpoint}: {type(body).__name__}",
        endpoint=endpoint,
    )


async def fetch_with_fallback(
    ctx: DataContext,
    *,
    key: str,
    ttl: float,
    source: EntitySource[T],
) -> T:
    """Cached read of *source*: primary with retry, then the live store.

    Only a successfully normalized value is cached. When both sources
    fail a :class:`FetchError` carrying both causes is raised and the
    next call tries both sources again.
    """
    cached = ctx.cache.get(key)
    if cached is not None:
        _logger.debug("Cache hit key=%s", key)
        return cached

    primary_error: PrimaryUnavailableError | None = None
    try:
        records = await call_with_retry(
            source.fetch_primary,
            ctx.retry_policy,
            description=f"Primary read of {source.entity}",
            sleep=ctx.sleep,
        )
        result = _normalize(source, records, primary=True)
    except PrimaryUnavailableError as exc:
        primary_error = exc
        _logger.warning(
            "Primary read of %s failed, falling back to live store: %s",
            source.entity,
            exc,
        )
    else:
        ctx.cache.set(key, result, ttl)
        return result

    try:
        records = await source.fetch_secondary()
        result = _normalize(source, records, primary=False)
    except SecondaryUnavailableError as exc:
        _logger.warning("Live store read of %s failed: %s", source.entity, exc)
        raise FetchError(
            f"Failed to fetch {source.entity}: primary: {primary_error}; live store: {exc}",
            entity=source.entity,
            primary_error=primary_error,
            secondary_error=exc,
        ) from exc

    _logger.info("Served %s from live store", source.entity)
    ctx.cache.set(key, result, ttl)
    return result


def _normalize(source: EntitySource[T], records: Any, *, primary: bool) -> T:
    try:
        return source.normalize(records)
    except (ValidationError, TypeError, ValueError) as exc:
        message = f"Could not normalize {source.entity}: {exc}"
        if primary:
            raise PrimaryUnavailableError(message, endpoint=source.entity) from exc
        raise SecondaryUnavailableError(message, collection=source.entity) from exc


async def fetch_primary_only(
    ctx: DataContext,
    *,
    key: str,
    ttl: float,
    entity: str,
    fetch: Callable[[], Awaitable[Any]],
    normalize: Callable[[Any], T],
) -> T:
    """Cached read from the primary API alone (no live store equivalent)."""
    cached = ctx.cache.get(key)
    if cached is not None:
        return cached
    try:
        body = await call_with_retry(fetch, ctx.retry_policy, description=f"Primary read of {entity}", sleep=ctx.sleep)
        result = normalize(body)
    except (PrimaryUnavailableError, ValidationError, ValueError) as exc:
        raise FetchError(f"Failed to fetch {entity}: {exc}", entity=entity, primary_error=exc) from exc
    ctx.cache.set(key, result, ttl)
    return result
