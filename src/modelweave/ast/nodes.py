"""Immutable SQL AST nodes. All SQL is generated from these, never by splicing strings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class JoinType(StrEnum):
    LEFT = "LEFT"
    INNER = "INNER"
    RIGHT = "RIGHT"
    FULL = "FULL"
    CROSS = "CROSS"


@dataclass(frozen=True)
class Literal:
    """A literal value: number, string, boolean, or NULL."""

    value: str | int | float | bool | None

    @classmethod
    def string(cls, v: str) -> Literal:
        return cls(value=v)

    @classmethod
    def null(cls) -> Literal:
        return cls(value=None)


@dataclass(frozen=True)
class ColumnRef:
    """Reference to a column, optionally qualified by table alias."""

    name: str
    table: str | None = None


@dataclass(frozen=True)
class AliasedExpr:
    """expr AS alias."""

    expr: Expr
    alias: str


@dataclass(frozen=True)
class BinaryOp:
    """Binary operation: left op right."""

    left: Expr
    op: str  # =, <>, <, AND, OR, LIKE, ...
    right: Expr


@dataclass(frozen=True)
class IsNull:
    expr: Expr
    negated: bool = False  # True = IS NOT NULL


@dataclass(frozen=True)
class InList:
    expr: Expr
    values: list[Expr] = field(default_factory=list)
    negated: bool = False


@dataclass(frozen=True)
class Between:
    expr: Expr
    low: Expr
    high: Expr
    negated: bool = False


@dataclass(frozen=True)
class RawSQL:
    """A fragment already rendered for the target dialect (aggregate expressions)."""

    sql: str


Expr = (
    Literal
    | ColumnRef
    | AliasedExpr
    | BinaryOp
    | IsNull
    | InList
    | Between
    | RawSQL
)


@dataclass(frozen=True)
class TableName:
    """A physical table, optionally schema-qualified."""

    name: str
    schema: str | None = None


@dataclass(frozen=True)
class From:
    source: TableName
    alias: str | None = None


@dataclass(frozen=True)
class Join:
    join_type: JoinType
    source: TableName
    alias: str | None = None
    on: Expr | None = None  # None only for CROSS joins


@dataclass(frozen=True)
class OrderByItem:
    expr: Expr
    desc: bool = False
    nulls_last: bool | None = None


@dataclass(frozen=True)
class Select:
    """A complete SELECT statement."""

    columns: list[Expr] = field(default_factory=list)
    from_: From | None = None
    joins: list[Join] = field(default_factory=list)
    where: Expr | None = None
    group_by: list[Expr] = field(default_factory=list)
    having: Expr | None = None
    order_by: list[OrderByItem] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
