"""Aggregation-pipeline compilation for document stores (MongoDB-style stages)."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from sqlglot import exp

from modelweave.compiler.expressions import AnalyzedAggregate
from modelweave.compiler.sql import analyze_aggregates
from modelweave.errors import CompileError
from modelweave.models.description import (
    Connective,
    FilterOperator,
    QueryDescription,
    SortDirection,
)
from modelweave.models.result import CompiledQuery, OutputColumn

DOCUMENT_DIALECT = "document"

_COMPARISONS: dict[FilterOperator, str] = {
    FilterOperator.EQ: "$eq",
    FilterOperator.GT: "$gt",
    FilterOperator.GTE: "$gte",
    FilterOperator.LT: "$lt",
    FilterOperator.LTE: "$lte",
    FilterOperator.IN: "$in",
}

_ACCUMULATORS: dict[type[exp.Expression], str] = {
    exp.Sum: "$sum",
    exp.Avg: "$avg",
    exp.Min: "$min",
    exp.Max: "$max",
}


def like_to_regex(pattern: str) -> str:
    """Translate a SQL LIKE pattern into an anchored regular expression."""
    out = []
    for ch in pattern:
        if ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return "^" + "".join(out) + "$"


def condition(field: str, operator: FilterOperator, value: Any) -> dict[str, Any]:
    """A ``$match`` condition for one predicate on ``field``."""
    match operator:
        case FilterOperator.IS_NULL:
            return {field: {"$eq": None}}
        case FilterOperator.IS_NOT_NULL:
            return {field: {"$ne": None}}
        case FilterOperator.BETWEEN:
            low, high = value
            return {field: {"$gte": low, "$lte": high}}
        case FilterOperator.LIKE:
            return {field: {"$regex": like_to_regex(value), "$options": "i"}}
        # negative comparisons never match NULL or a missing field, as in SQL
        case FilterOperator.NOT_LIKE:
            return {field: {"$not": {"$regex": like_to_regex(value), "$options": "i"}, "$ne": None}}
        case FilterOperator.NEQ:
            return {field: {"$nin": [value, None]}}
        case FilterOperator.NOT_IN:
            return {field: {"$nin": [*value, None]}}
        case _:
            return {field: {_COMPARISONS[operator]: value}}


def _fold(current: dict[str, Any] | None, connective: Connective, cond: dict[str, Any]) -> dict[str, Any]:
    if current is None:
        return cond
    key = "$or" if connective is Connective.OR else "$and"
    return {key: [current, cond]}


class DocumentPipelineCompiler:
    """Compiles a single-collection description into an aggregation pipeline.

    Only plain aggregates over one field are expressible; arithmetic over
    aggregates, alias chains and multi-collection joins are rejected, the
    latter being executed by the federated engine instead.
    """

    def compile(
        self,
        description: QueryDescription,
        rewrites: Mapping[str, str] | None = None,
    ) -> CompiledQuery:
        if len(description.tables) != 1 or description.joins:
            raise CompileError(
                "document sources cannot join collections in a single pipeline",
                clause="JOIN",
            )
        table = description.tables[0]
        pipeline: list[dict[str, Any]] = []
        columns: list[OutputColumn] = []

        match: dict[str, Any] | None = None
        for f in description.filters:
            match = _fold(match, f.connective, condition(f.column, f.operator, f.value))
        if match is not None:
            pipeline.append({"$match": match})

        analyzed = analyze_aggregates(description, rewrites)
        if analyzed or description.group_by:
            pipeline.extend(self._grouping(description, analyzed))
        else:
            pipeline.append(
                {"$project": {c.output_name: f"${c.column}" for c in description.selected_columns}}
            )

        for c in description.selected_columns:
            columns.append(
                OutputColumn(name=c.output_name, table=c.table, column=c.column, label=c.label)
            )
        for alias in analyzed:
            columns.append(OutputColumn(name=alias, aggregate=True, label=alias))

        having: dict[str, Any] | None = None
        for h in description.having:
            having = _fold(having, h.connective, condition(h.target, h.operator, h.value))
        if having is not None:
            pipeline.append({"$match": having})

        if description.order_by:
            pipeline.append(
                {
                    "$sort": {
                        o.target: -1 if o.direction is SortDirection.DESC else 1
                        for o in description.order_by
                    }
                }
            )
        if description.offset:
            pipeline.append({"$skip": description.offset})
        if description.limit is not None:
            pipeline.append({"$limit": description.limit})

        return CompiledQuery(
            source_id=table.source_id,
            dialect=DOCUMENT_DIALECT,
            statement={"collection": table.table, "pipeline": pipeline},
            columns=columns,
        )

    def _grouping(
        self, description: QueryDescription, analyzed: dict[str, AnalyzedAggregate]
    ) -> list[dict[str, Any]]:
        keys = {g.output_name: f"${g.column}" for g in description.group_by}
        group: dict[str, Any] = {"_id": keys or None}
        project: dict[str, Any] = {"_id": 0}
        for name in keys:
            project[name] = f"$_id.{name}"
        for alias, item in analyzed.items():
            accumulator, projection = self._accumulator(alias, item)
            group[alias] = accumulator
            project[alias] = projection
        return [{"$group": group}, {"$project": project}]

    @staticmethod
    def _accumulator(alias: str, item: AnalyzedAggregate) -> tuple[dict[str, Any], Any]:
        node = item.simple_function
        if node is None or item.alias_refs:
            raise CompileError(
                "document pipelines support only single aggregate calls",
                clause="SELECT",
                fragment=item.text,
            )
        arg = node.this
        if isinstance(node, exp.Count):
            if isinstance(arg, exp.Star):
                return {"$sum": 1}, 1
            if isinstance(arg, exp.Distinct):
                inner = arg.expressions[0] if len(arg.expressions) == 1 else None
                if isinstance(inner, exp.Column):
                    return {"$addToSet": f"${inner.name}"}, {"$size": f"${alias}"}
            elif isinstance(arg, exp.Column):
                field = f"${arg.name}"
                return {"$sum": {"$cond": [{"$ne": [field, None]}, 1, 0]}}, 1
        elif isinstance(arg, exp.Column):
            return {_ACCUMULATORS[type(node)]: f"${arg.name}"}, 1
        raise CompileError(
            "document pipelines support aggregates over a single field only",
            clause="SELECT",
            fragment=item.text,
        )
