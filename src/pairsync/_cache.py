"""Internal expiring key/value cache shared by the data access layer."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


def _signature_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "all"
    return str(value).strip().lower()


def cache_key(entity: str, params: Mapping[str, Any] | None = None) -> str:
    """Build a cache key from an entity name and its request parameters.

    Parameters are sorted and lower-cased so that equivalent requests
    (``status="OPEN"`` vs ``status="open"``) share an entry.
    """
    if not params:
        return entity
    parts = [f"{name}={_signature_value(params[name])}" for name in sorted(params)]
    return f"{entity}:{'&'.join(parts)}"


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    """A cached value with its absolute expiry on the cache clock."""

    value: T
    expires_at: float


class TtlCache:
    """Expiring in-memory cache with lazy eviction.

    Entries are checked on read: once ``now >= expires_at`` the entry is
    evicted and reported absent, so a stale value is never returned.
    There is no background eviction and nothing blocks; the cache is only
    touched from the event loop thread.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store *value* for *ttl* seconds, replacing any existing entry."""
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate(self, key: str) -> None:
        """Evict *key* after a mutation the cache cannot observe itself."""
        self.delete(key)

    def clear_all(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Evict every expired entry and return how many were dropped."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key) if isinstance(key, str) else None
        return entry is not None and self._clock() < entry.expires_at

    def __len__(self) -> int:
        return len(self._entries)
