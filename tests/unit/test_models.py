"""Tests for the query description, result and source models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from modelweave.models.description import (
    AggregateFunction,
    FilterOperator,
    JoinCondition,
    JoinKind,
    QueryDescription,
    SelectedColumn,
)
from modelweave.models.result import OutputColumn, describe_columns, infer_type
from modelweave.models.source import RowSet


def _desc(**extra: object) -> QueryDescription:
    data: dict[str, object] = {
        "tables": [
            {"alias": "orders", "source_id": "shop", "table": "orders", "schema": "public"},
            {"alias": "customers", "source_id": "crm", "table": "customers"},
        ]
    }
    data.update(extra)
    return QueryDescription.model_validate(data)


class TestQueryDescription:
    def test_primary_defaults_to_first_table(self) -> None:
        d = _desc()
        assert d.primary_table == "orders"
        assert d.primary == "orders"

    def test_explicit_primary_kept(self) -> None:
        d = _desc(primary_table="customers")
        assert d.primary == "customers"

    def test_schema_alias(self) -> None:
        d = _desc()
        assert d.tables[0].schema_name == "public"
        assert d.tables[1].schema_name is None

    def test_tables_required(self) -> None:
        with pytest.raises(ValidationError):
            QueryDescription.model_validate({"tables": []})

    def test_negative_one_limit_means_no_limit(self) -> None:
        d = _desc(limit=-1, offset=-1)
        assert d.limit is None
        assert d.offset is None

    def test_other_negative_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _desc(limit=-5)

    def test_source_ids_in_table_order(self) -> None:
        d = _desc()
        assert d.source_ids == ["shop", "crm"]
        assert d.is_federated

    def test_frozen(self) -> None:
        d = _desc()
        with pytest.raises(ValidationError):
            d.limit = 3  # type: ignore[misc]

    def test_output_names_skip_reference_only_columns(self) -> None:
        d = _desc(
            columns=[
                {"table": "customers", "column": "name", "label": "Customer"},
                {"table": "orders", "column": "amount", "selected": False},
            ],
            aggregates=[{"expression": "SUM(orders.amount)", "alias": "total"}],
        )
        assert d.output_names() == ["customers_name", "total"]
        assert d.has_aggregates

    def test_json_round_trip_input(self) -> None:
        d = QueryDescription.model_validate_json(
            '{"tables": [{"alias": "t", "source_id": "s", "table": "x"}], "limit": 10}'
        )
        assert d.limit == 10
        assert d.aliases == ["t"]


class TestAggregateFunction:
    def test_desugars_with_default_alias(self) -> None:
        fn = AggregateFunction(function="count", table="orders", column="id", distinct=True)
        expr = fn.to_expression()
        assert expr.expression == "COUNT(DISTINCT orders.id)"
        assert expr.alias == "count_orders_id"

    def test_explicit_alias(self) -> None:
        fn = AggregateFunction(function="sum", table="orders", column="amount", alias="total")
        assert fn.to_expression().alias == "total"

    def test_included_in_all_aggregates(self) -> None:
        d = _desc(
            aggregates=[{"expression": "SUM(orders.amount)", "alias": "total"}],
            aggregate_functions=[{"function": "max", "table": "orders", "column": "amount"}],
        )
        assert [a.alias for a in d.all_aggregates] == ["total", "max_orders_amount"]


class TestJoinCondition:
    def test_helpers(self) -> None:
        j = JoinCondition(
            left_table="orders", left_column="customer_id", right_table="customers", right_column="id"
        )
        assert j.join_type is JoinKind.INNER
        assert j.touches("customers")
        assert j.other("orders") == "customers"
        assert j.column_for("customers") == "id"
        assert str(j) == "orders.customer_id INNER customers.id"


class TestColumns:
    def test_output_name(self) -> None:
        c = SelectedColumn(table="customers", column="name")
        assert c.output_name == "customers_name"
        assert str(c) == "customers.name"

    def test_filter_operator_values(self) -> None:
        assert FilterOperator("not_in") is FilterOperator.NOT_IN
        assert FilterOperator(">=") is FilterOperator.GTE


class TestResultModels:
    def test_infer_type(self) -> None:
        assert infer_type([1, 2, None]) == "integer"
        assert infer_type([1, 2.5]) == "float"
        assert infer_type([Decimal("1.5")]) == "decimal"
        assert infer_type(["a"]) == "string"
        assert infer_type([True]) == "boolean"
        assert infer_type([date(2024, 1, 1)]) == "date"
        assert infer_type([None, None]) == "unknown"
        assert infer_type([1, "a"]) == "unknown"

    def test_describe_columns_carries_labels(self) -> None:
        cols = [
            OutputColumn(name="customers_name", table="customers", column="name", label="Customer"),
            OutputColumn(name="total", aggregate=True, label="total"),
        ]
        meta = describe_columns(cols, [{"customers_name": "A", "total": 80}])
        assert meta[0].type == "string"
        assert meta[0].label == "Customer"
        assert meta[1].aggregate
        assert meta[1].type == "integer"

    def test_rowset_as_dicts(self) -> None:
        rs = RowSet(columns=["a", "b"], rows=[(1, 2)])
        assert rs.as_dicts() == [{"a": 1, "b": 2}]
