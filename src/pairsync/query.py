"""Query shapes for live store reads and subscriptions.

A :class:`QueryShape` describes ordering, limit and equality filters
over a collection. It is hashable so it can key a subscription, renders
a canonical :meth:`~QueryShape.signature` for cache keys, and evaluates
itself client-side against a document set.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pairsync.ingestion.normalize import normalize_timestamp_seconds


class Direction(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = Direction.DESC


@dataclass(frozen=True)
class Where:
    """Equality filter ``field == value``."""

    field: str
    value: Any


@dataclass(frozen=True)
class QueryShape:
    order_by: OrderBy | None = None
    limit: int | None = None
    where: tuple[Where, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        # Canonical filter order so equal queries hash equally.
        object.__setattr__(self, "where", tuple(sorted(self.where, key=lambda w: (w.field, repr(w.value)))))

    @classmethod
    def latest(cls, field_name: str = "timestamp", limit: int | None = None, **equals: Any) -> QueryShape:
        """Newest first by *field_name*, optionally limited and filtered."""
        return cls(
            order_by=OrderBy(field_name, Direction.DESC),
            limit=limit,
            where=tuple(Where(name, value) for name, value in equals.items()),
        )

    def signature(self) -> str:
        parts: list[str] = []
        for clause in self.where:
            parts.append(f"{clause.field}=={clause.value!r}")
        if self.order_by is not None:
            parts.append(f"order:{self.order_by.field}:{self.order_by.direction.value}")
        if self.limit is not None:
            parts.append(f"limit:{self.limit}")
        return ";".join(parts) or "*"

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(record.get(clause.field) == clause.value for clause in self.where)

    def apply(self, records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Evaluate the query against flat records.

        Records missing the order-by field are excluded, as in the store's
        own query engine.
        """
        selected = [dict(record) for record in records if self.matches(record)]
        if self.order_by is not None:
            order_field = self.order_by.field
            selected = [record for record in selected if record.get(order_field) is not None]
            selected.sort(
                key=lambda record: _sort_value(record.get(order_field)),
                reverse=self.order_by.direction == Direction.DESC,
            )
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


def _sort_value(value: Any) -> tuple[int, Any]:
    if isinstance(value, (bool, int, float)):
        return (0, float(value))
    if isinstance(value, Mapping):
        seconds = normalize_timestamp_seconds(value)
        return (0, seconds * 1000.0 if seconds is not None else 0.0)
    if isinstance(value, str):
        return (1, value)
    return (2, repr(value))
