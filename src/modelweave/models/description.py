"""Query description models: the JSON contract between model authors and the engine."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_FROZEN = {"frozen": True, "populate_by_name": True}


class JoinKind(StrEnum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


class Connective(StrEnum):
    AND = "and"
    OR = "or"


class FilterOperator(StrEnum):
    EQ = "="
    NEQ = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    NOT_LIKE = "not_like"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class AggregateFunctionName(StrEnum):
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"


def output_name(table: str, column: str) -> str:
    """Output key of a plain column: ``<table_alias>_<column_name>``."""
    return f"{table}_{column}"


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER.match(name))


class TableReference(BaseModel):
    """A table taking part in the model, addressed by a description-local alias."""

    alias: str
    source_id: str
    table: str
    schema_name: str | None = Field(None, alias="schema")

    model_config = _FROZEN


class ColumnRef(BaseModel):
    """A ``(table alias, column)`` pair."""

    table: str
    column: str

    model_config = _FROZEN

    @property
    def output_name(self) -> str:
        return output_name(self.table, self.column)

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


class SelectedColumn(ColumnRef):
    """A column of the model; ``selected=False`` marks a reference-only column."""

    label: str | None = None
    selected: bool = True


class JoinCondition(BaseModel):
    """One equality condition between two tables; several between a pair form a composite key."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str
    join_type: JoinKind = JoinKind.INNER

    model_config = _FROZEN

    def touches(self, alias: str) -> bool:
        return alias in (self.left_table, self.right_table)

    def other(self, alias: str) -> str:
        return self.right_table if alias == self.left_table else self.left_table

    def column_for(self, alias: str) -> str:
        return self.left_column if alias == self.left_table else self.right_column

    def __str__(self) -> str:
        return (
            f"{self.left_table}.{self.left_column} {self.join_type.value.upper()} "
            f"{self.right_table}.{self.right_column}"
        )


class FilterPredicate(BaseModel):
    """A row-level predicate; predicates fold left to right by their connective."""

    table: str
    column: str
    operator: FilterOperator
    value: Any = None
    connective: Connective = Connective.AND

    model_config = _FROZEN

    @property
    def ref(self) -> ColumnRef:
        return ColumnRef(table=self.table, column=self.column)


class AggregateExpression(BaseModel):
    """Free-form aggregate SQL text exposed under ``alias``."""

    expression: str
    alias: str

    model_config = _FROZEN


class AggregateFunction(BaseModel):
    """Structured shorthand for a single-column aggregate."""

    function: AggregateFunctionName
    table: str
    column: str
    distinct: bool = False
    alias: str | None = None

    model_config = _FROZEN

    def to_expression(self) -> AggregateExpression:
        fn = self.function.value.upper()
        inner = f"{self.table}.{self.column}"
        if self.distinct:
            inner = f"DISTINCT {inner}"
        alias = self.alias or f"{self.function.value}_{self.table}_{self.column}"
        return AggregateExpression(expression=f"{fn}({inner})", alias=alias)


class HavingPredicate(BaseModel):
    """A post-aggregation predicate on an aggregate alias or output column name."""

    target: str
    operator: FilterOperator
    value: Any = None
    connective: Connective = Connective.AND

    model_config = _FROZEN


class OrderBy(BaseModel):
    target: str
    direction: SortDirection = SortDirection.ASC

    model_config = _FROZEN


class QueryDescription(BaseModel):
    """The complete, immutable description of one query over a logical data model."""

    tables: list[TableReference] = Field(min_length=1)
    primary_table: str | None = None
    columns: list[SelectedColumn] = []
    joins: list[JoinCondition] = []
    filters: list[FilterPredicate] = []
    group_by: list[ColumnRef] = []
    aggregates: list[AggregateExpression] = []
    aggregate_functions: list[AggregateFunction] = []
    having: list[HavingPredicate] = []
    order_by: list[OrderBy] = []
    limit: int | None = Field(None, ge=0)
    offset: int | None = Field(None, ge=0)

    model_config = _FROZEN

    @field_validator("limit", "offset", mode="before")
    @classmethod
    def _negative_means_none(cls, v: Any) -> Any:
        # UIs send -1 for "no limit"
        if isinstance(v, int) and not isinstance(v, bool) and v == -1:
            return None
        return v

    @model_validator(mode="before")
    @classmethod
    def _default_primary(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("primary_table"):
            tables = data.get("tables") or []
            if tables:
                first = tables[0]
                alias = first.get("alias") if isinstance(first, dict) else getattr(first, "alias", None)
                data = {**data, "primary_table": alias}
        return data

    # -- derived views -------------------------------------------------------

    @property
    def primary(self) -> str:
        return self.primary_table or self.tables[0].alias

    @property
    def aliases(self) -> list[str]:
        return [t.alias for t in self.tables]

    def table(self, alias: str) -> TableReference | None:
        for t in self.tables:
            if t.alias == alias:
                return t
        return None

    @property
    def source_ids(self) -> list[str]:
        """Distinct source ids in table-list order."""
        seen: dict[str, None] = {}
        for t in self.tables:
            seen.setdefault(t.source_id, None)
        return list(seen)

    @property
    def is_federated(self) -> bool:
        return len(self.source_ids) > 1

    @property
    def selected_columns(self) -> list[SelectedColumn]:
        return [c for c in self.columns if c.selected]

    @property
    def all_aggregates(self) -> list[AggregateExpression]:
        """Free-form and structured aggregates, in declaration order."""
        return list(self.aggregates) + [f.to_expression() for f in self.aggregate_functions]

    @property
    def has_aggregates(self) -> bool:
        return bool(self.aggregates or self.aggregate_functions)

    def output_names(self) -> list[str]:
        names = [c.output_name for c in self.selected_columns]
        names.extend(a.alias for a in self.all_aggregates)
        return names
