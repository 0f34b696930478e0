"""Tests for federated partitioning and result materialization."""

from __future__ import annotations

from typing import Any

from modelweave.compiler.sql import analyze_aggregates
from modelweave.federation import ResultMaterializer, plan_federation
from modelweave.federation.materializer import group_key, sort_rows
from modelweave.models.description import QueryDescription


def _description(**overrides: Any) -> QueryDescription:
    data: dict[str, Any] = {
        "tables": [
            {"alias": "orders", "source_id": "shop", "table": "orders"},
            {"alias": "items", "source_id": "shop", "table": "items"},
            {"alias": "customers", "source_id": "crm", "table": "customers"},
        ],
        "columns": [{"table": "customers", "column": "name"}],
        "joins": [
            {"left_table": "orders", "left_column": "id", "right_table": "items", "right_column": "order_id"},
            {"left_table": "orders", "left_column": "customer_id", "right_table": "customers",
             "right_column": "id", "join_type": "left"},
        ],
        "group_by": [{"table": "customers", "column": "name"}],
        "aggregates": [{"expression": "SUM(items.price)", "alias": "revenue"}],
    }
    data.update(overrides)
    return QueryDescription.model_validate(data)


def _plan(d: QueryDescription, joinable: bool = True) -> Any:
    return plan_federation(d, analyze_aggregates(d), lambda _: joinable)


class TestPartitioning:
    def test_same_source_tables_share_a_partition(self) -> None:
        plan = _plan(_description())
        assert [(p.source_id, p.aliases) for p in plan.partitions] == [
            ("shop", ["orders", "items"]),
            ("crm", ["customers"]),
        ]
        shop = plan.partitions[0]
        assert len(shop.joins) == 1
        assert shop.output_names == ["orders_customer_id", "items_price"]
        assert plan.partitions[1].output_names == ["customers_name", "customers_id"]

    def test_join_plan_between_partitions(self) -> None:
        plan = _plan(_description())
        assert plan.join_plan.root == ["orders", "items"]
        step = plan.join_plan.steps[0]
        assert step.nodes == ["customers"]
        assert step.pairs == [("orders", "customer_id", "customers", "id")]

    def test_unjoinable_source_splits_per_table(self) -> None:
        plan = _plan(_description(), joinable=False)
        assert [p.aliases for p in plan.partitions] == [["orders"], ["items"], ["customers"]]

    def test_filters_pushed_unless_null_supplying(self) -> None:
        d = _description(
            filters=[
                {"table": "orders", "column": "status", "operator": "=", "value": "paid"},
                {"table": "customers", "column": "country", "operator": "=", "value": "DE"},
            ]
        )
        plan = _plan(d)
        assert [f.column for f in plan.partitions[0].filters] == ["status"]
        assert plan.partitions[1].filters == []
        assert [f.column for f in plan.residual_filters] == ["country"]
        assert "customers_country" in plan.partitions[1].output_names
        assert "orders_status" not in plan.partitions[0].output_names

    def test_or_filters_stay_residual(self) -> None:
        d = _description(
            filters=[
                {"table": "orders", "column": "status", "operator": "=", "value": "paid"},
                {"table": "orders", "column": "status", "operator": "=", "value": "open", "connective": "or"},
            ]
        )
        plan = _plan(d)
        assert plan.partitions[0].filters == []
        assert len(plan.residual_filters) == 2

    def test_sub_description(self) -> None:
        d = _description()
        plan = _plan(d)
        sub = plan.partitions[0].sub_description(d)
        assert sub.aliases == ["orders", "items"]
        assert sub.source_ids == ["shop"]
        assert not sub.has_aggregates
        assert sub.output_names() == ["orders_customer_id", "items_price"]


class TestMaterializer:
    ROWS = [
        {"customers_name": "A", "items_price": 10, "customers_country": "DE"},
        {"customers_name": "A", "items_price": 5, "customers_country": "DE"},
        {"customers_name": "B", "items_price": 7, "customers_country": "US"},
        {"customers_name": None, "items_price": 1, "customers_country": None},
    ]

    def _materialize(self, **overrides: Any) -> list[dict[str, Any]]:
        d = _description(**overrides)
        plan = _plan(d)
        return ResultMaterializer(d, analyze_aggregates(d), plan.residual_filters).materialize(self.ROWS)

    def test_group_and_order(self) -> None:
        rows = self._materialize(order_by=[{"target": "revenue", "direction": "desc"}])
        assert rows == [
            {"customers_name": "A", "revenue": 15},
            {"customers_name": "B", "revenue": 7},
            {"customers_name": None, "revenue": 1},
        ]

    def test_residual_filter_and_having(self) -> None:
        rows = self._materialize(
            filters=[{"table": "customers", "column": "country", "operator": "=", "value": "DE"}],
        )
        assert rows == [{"customers_name": "A", "revenue": 15}]
        rows = self._materialize(having=[{"target": "revenue", "operator": ">", "value": 5}])
        assert {r["customers_name"] for r in rows} == {"A", "B"}

    def test_limit_offset(self) -> None:
        rows = self._materialize(order_by=[{"target": "revenue"}], limit=1, offset=1)
        assert rows == [{"customers_name": "B", "revenue": 7}]

    def test_global_aggregate_over_no_rows(self) -> None:
        d = _description(columns=[], group_by=[])
        materializer = ResultMaterializer(d, analyze_aggregates(d))
        assert materializer.materialize([]) == [{"revenue": None}]

    def test_nulls_sort_last(self) -> None:
        rows = [{"x": None}, {"x": 2}, {"x": 1}]
        assert sort_rows(rows, [("x", False)]) == [{"x": 1}, {"x": 2}, {"x": None}]
        assert sort_rows(rows, [("x", True)]) == [{"x": 2}, {"x": 1}, {"x": None}]

    def test_group_values_are_not_normalized(self) -> None:
        d = _description()
        rows = [
            {"customers_name": "A", "items_price": 1},
            {"customers_name": "A ", "items_price": 2},
            {"customers_name": "007", "items_price": 4},
            {"customers_name": "7", "items_price": 8},
        ]
        result = ResultMaterializer(d, analyze_aggregates(d)).materialize(rows)
        assert result == [
            {"customers_name": "A", "revenue": 1},
            {"customers_name": "A ", "revenue": 2},
            {"customers_name": "007", "revenue": 4},
            {"customers_name": "7", "revenue": 8},
        ]

    def test_group_key(self) -> None:
        assert group_key(" 42 ") == " 42 "
        assert group_key(True) != group_key(1)
        assert group_key([1, 2]) == group_key([1, 2])
