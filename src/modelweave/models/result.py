"""Compilation and execution results returned to callers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

FLAG_CROSS_JOIN = "fallback-cross-join"
FLAG_EXPRESSION_CLEANUP = "expression-cleanup"


class ExecutionMode(StrEnum):
    SINGLE = "single"
    FEDERATED = "federated"


class OutputColumn(BaseModel):
    """One output column of a compiled statement."""

    name: str
    table: str | None = None
    column: str | None = None
    aggregate: bool = False
    label: str | None = None


class CompiledQuery(BaseModel):
    """A statement ready to hand to a connector, or a federated plan of sub-queries."""

    source_id: str | None
    dialect: str
    statement: str | dict[str, Any] | None = None
    columns: list[OutputColumn] = []
    flags: list[str] = []
    warnings: list[str] = []
    sql_valid: bool = True
    partitions: list[CompiledQuery] = []

    @property
    def output_names(self) -> list[str]:
        return [c.name for c in self.columns]


class ColumnMetadata(BaseModel):
    name: str
    type: str = "unknown"
    label: str | None = None
    table: str | None = None
    column: str | None = None
    aggregate: bool = False


class ExecutionResult(BaseModel):
    """Rows keyed by output name plus column metadata and soft-fallback flags."""

    rows: list[dict[str, Any]] = []
    columns: list[ColumnMetadata] = []
    flags: list[str] = []
    warnings: list[str] = []
    mode: ExecutionMode = ExecutionMode.SINGLE
    elapsed_ms: int = 0


def infer_type(values: list[Any]) -> str:
    """Infer a column type name from its values; mixed int/float widens to float."""
    kinds: set[str] = set()
    for v in values:
        if v is None:
            continue
        match v:
            case bool():
                kinds.add("boolean")
            case int():
                kinds.add("integer")
            case float():
                kinds.add("float")
            case Decimal():
                kinds.add("decimal")
            case datetime():
                kinds.add("datetime")
            case date():
                kinds.add("date")
            case str():
                kinds.add("string")
            case _:
                kinds.add("unknown")
    if not kinds:
        return "unknown"
    if len(kinds) == 1:
        return kinds.pop()
    if kinds <= {"integer", "float", "decimal"}:
        return "float"
    if kinds <= {"date", "datetime"}:
        return "datetime"
    return "unknown"


def describe_columns(columns: list[OutputColumn], rows: list[dict[str, Any]]) -> list[ColumnMetadata]:
    return [
        ColumnMetadata(
            name=c.name,
            type=infer_type([r.get(c.name) for r in rows]),
            label=c.label,
            table=c.table,
            column=c.column,
            aggregate=c.aggregate,
        )
        for c in columns
    ]
