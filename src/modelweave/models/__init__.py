"""Pydantic domain models for modelweave."""

from modelweave.models.description import (
    AggregateExpression,
    AggregateFunction,
    ColumnRef,
    Connective,
    FilterOperator,
    FilterPredicate,
    HavingPredicate,
    JoinCondition,
    JoinKind,
    OrderBy,
    QueryDescription,
    SelectedColumn,
    SortDirection,
    TableReference,
)
from modelweave.models.errors import ValidationResult, Violation, ViolationKind
from modelweave.models.result import (
    ColumnMetadata,
    CompiledQuery,
    ExecutionMode,
    ExecutionResult,
    OutputColumn,
)
from modelweave.models.source import (
    ColumnDescriptor,
    ForeignKey,
    RowSet,
    SourceKind,
    TableDescriptor,
    TableSchema,
)

__all__ = [
    "AggregateExpression",
    "AggregateFunction",
    "ColumnDescriptor",
    "ColumnMetadata",
    "ColumnRef",
    "CompiledQuery",
    "Connective",
    "ExecutionMode",
    "ExecutionResult",
    "FilterOperator",
    "FilterPredicate",
    "ForeignKey",
    "HavingPredicate",
    "JoinCondition",
    "JoinKind",
    "OrderBy",
    "OutputColumn",
    "QueryDescription",
    "RowSet",
    "SelectedColumn",
    "SortDirection",
    "SourceKind",
    "TableDescriptor",
    "TableReference",
    "ValidationResult",
    "Violation",
    "ViolationKind",
]
