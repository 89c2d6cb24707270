from __future__ import annotations

import pytest

from pairsync.query import Direction, OrderBy, QueryShape, Where

RECORDS = [
    {"id": "a", "type": "trade_opened", "timestamp": 3},
    {"id": "b", "type": "position_sync_completed", "timestamp": 5},
    {"id": "c", "type": "position_sync_completed", "timestamp": 1},
    {"id": "d", "type": "position_sync_completed"},
]


def test_latest_orders_descending_and_limits() -> None:
    result = QueryShape.latest(limit=2).apply(RECORDS)
    assert [record["id"] for record in result] == ["b", "a"]


def test_records_without_order_field_are_excluded() -> None:
    result = QueryShape.latest(type="position_sync_completed").apply(RECORDS)
    assert [record["id"] for record in result] == ["b", "c"]


def test_unordered_query_keeps_everything() -> None:
    assert len(QueryShape().apply(RECORDS)) == 4


def test_ascending_order() -> None:
    query = QueryShape(order_by=OrderBy("timestamp", Direction.ASC))
    assert [record["id"] for record in query.apply(RECORDS)] == ["c", "a", "b"]


def test_equal_queries_share_signature_and_hash() -> None:
    first = QueryShape(where=(Where("b", 1), Where("a", True)), limit=5)
    second = QueryShape(where=(Where("a", True), Where("b", 1)), limit=5)
    assert first == second
    assert hash(first) == hash(second)
    assert first.signature() == "a==True;b==1;limit:5"
    assert QueryShape().signature() == "*"


def test_negative_limit_rejected() -> None:
    with pytest.raises(ValueError):
        QueryShape(limit=-1)
