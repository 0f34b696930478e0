"""Tests for in-memory predicate and expression evaluation."""

from __future__ import annotations

from decimal import Decimal

import pytest
import sqlglot

from modelweave.errors import ExecutionError
from modelweave.federation.evaluator import (
    GroupScope,
    RowScope,
    _Scope,
    as_number,
    compare,
    evaluate,
    fold,
)
from modelweave.models.description import Connective, FilterOperator

ROWS = [
    {"orders_amount": 50, "orders_customer_id": 1},
    {"orders_amount": 30, "orders_customer_id": 1},
    {"orders_amount": None, "orders_customer_id": 2},
]


def _group(text: str, computed: dict | None = None) -> object:
    return evaluate(sqlglot.parse_one(text), GroupScope(ROWS, computed or {}))


class TestCompare:
    def test_null_is_unknown(self) -> None:
        assert compare(FilterOperator.EQ, None, 1) is None
        assert compare(FilterOperator.IS_NULL, None, None) is True
        assert compare(FilterOperator.IS_NOT_NULL, 0, None) is True

    def test_numeric_coercion(self) -> None:
        assert compare(FilterOperator.EQ, "10", 10)
        assert compare(FilterOperator.GT, Decimal("2.5"), 2)
        assert compare(FilterOperator.IN, "2", [1, 2])
        assert compare(FilterOperator.NOT_IN, 3, [1, 2])
        assert compare(FilterOperator.BETWEEN, 5, [1, 5])

    def test_like_case_insensitive(self) -> None:
        assert compare(FilterOperator.LIKE, "Alice", "al%")
        assert compare(FilterOperator.NOT_LIKE, "Bob", "al%")
        assert compare(FilterOperator.LIKE, "a.c", "a_c")

    def test_incomparable(self) -> None:
        with pytest.raises(ExecutionError):
            compare(FilterOperator.GT, "abc", 1)

    def test_as_number(self) -> None:
        assert as_number("3") == 3
        assert as_number("3.5") == 3.5
        assert as_number("x3") == "x3"
        assert as_number(True) is True


class TestFold:
    def test_left_to_right(self) -> None:
        # (True OR False) AND False
        assert not fold([(Connective.AND, True), (Connective.OR, False), (Connective.AND, False)])
        # (False AND True) OR True
        assert fold([(Connective.AND, False), (Connective.AND, True), (Connective.OR, True)])

    def test_unknown_does_not_match(self) -> None:
        assert not fold([(Connective.AND, None)])
        assert fold([(Connective.AND, None), (Connective.OR, True)])

    def test_empty_matches(self) -> None:
        assert fold([])


class TestAggregates:
    def test_basic(self) -> None:
        assert _group("SUM(orders.amount)") == 80
        assert _group("COUNT(*)") == 3
        assert _group("COUNT(orders.amount)") == 2
        assert _group("AVG(orders.amount)") == 40
        assert _group("MIN(orders.amount)") == 30
        assert _group("MAX(orders.amount)") == 50
        assert _group("COUNT(DISTINCT orders.customer_id)") == 2

    def test_empty_group(self) -> None:
        scope = GroupScope([], {})
        assert evaluate(sqlglot.parse_one("SUM(orders.amount)"), scope) is None
        assert evaluate(sqlglot.parse_one("COUNT(*)"), scope) == 0

    def test_arithmetic_and_aliases(self) -> None:
        assert _group("SUM(orders.amount) / COUNT(*)") == pytest.approx(80 / 3)
        assert _group("total * 2", {"total": 80}) == 160
        assert _group("SUM(orders.amount) / 0") is None

    def test_scalar_constructs(self) -> None:
        assert _group("COALESCE(MAX(orders.amount), 0)") == 50
        assert _group("ROUND(AVG(orders.amount) / 3, 1)") == 13.3
        assert _group("CASE WHEN SUM(orders.amount) > 100 THEN 'big' ELSE 'small' END") == "small"
        assert _group("SUM(CASE WHEN orders.customer_id = 1 THEN 1 ELSE 0 END)") == 2
        assert _group("CAST(SUM(orders.amount) AS VARCHAR)") == "80"

    def test_column_outside_aggregate(self) -> None:
        with pytest.raises(ExecutionError):
            _group("orders.amount")


class TestRowScope:
    def test_column_lookup(self) -> None:
        scope = RowScope(ROWS[0])
        assert evaluate(sqlglot.parse_one("orders.amount + 1"), scope) == 51

    def test_missing_column(self) -> None:
        with pytest.raises(ExecutionError, match="orders_total"):
            evaluate(sqlglot.parse_one("orders.total"), RowScope(ROWS[0]))

    def test_scope_without_aggregates_is_abstract(self) -> None:
        class ColumnsOnly(_Scope):
            def column(self, table: str, name: str) -> object:
                return None

        with pytest.raises(TypeError):
            ColumnsOnly()
