"""Fluent builder API for constructing SQL AST nodes."""

from __future__ import annotations

from typing import Self

from modelweave.ast.nodes import (
    AliasedExpr,
    BinaryOp,
    ColumnRef,
    Expr,
    From,
    Join,
    JoinType,
    Literal,
    OrderByItem,
    Select,
    TableName,
)


class QueryBuilder:
    """Fluent builder for ergonomic AST construction."""

    def __init__(self) -> None:
        self._columns: list[Expr] = []
        self._from: From | None = None
        self._joins: list[Join] = []
        self._where: Expr | None = None
        self._group_by: list[Expr] = []
        self._having: Expr | None = None
        self._order_by: list[OrderByItem] = []
        self._limit: int | None = None
        self._offset: int | None = None

    def select_aliased(self, expr: Expr, alias: str) -> Self:
        self._columns.append(AliasedExpr(expr=expr, alias=alias))
        return self

    def from_(self, table: TableName, alias: str | None = None) -> Self:
        self._from = From(source=table, alias=alias)
        return self

    def join(
        self,
        table: TableName,
        on: Expr,
        join_type: JoinType = JoinType.INNER,
        alias: str | None = None,
    ) -> Self:
        self._joins.append(Join(join_type=join_type, source=table, alias=alias, on=on))
        return self

    def cross_join(self, table: TableName, alias: str | None = None) -> Self:
        self._joins.append(Join(join_type=JoinType.CROSS, source=table, alias=alias))
        return self

    def where(self, condition: Expr) -> Self:
        """Set the WHERE condition; a second call ANDs onto the first."""
        if self._where is None:
            self._where = condition
        else:
            self._where = BinaryOp(left=self._where, op="AND", right=condition)
        return self

    def group_by(self, *exprs: Expr) -> Self:
        self._group_by.extend(exprs)
        return self

    def having(self, condition: Expr) -> Self:
        if self._having is None:
            self._having = condition
        else:
            self._having = BinaryOp(left=self._having, op="AND", right=condition)
        return self

    def order_by(self, expr: Expr, desc: bool = False, nulls_last: bool | None = None) -> Self:
        self._order_by.append(OrderByItem(expr=expr, desc=desc, nulls_last=nulls_last))
        return self

    def limit(self, n: int) -> Self:
        self._limit = n
        return self

    def offset(self, n: int) -> Self:
        self._offset = n
        return self

    def build(self) -> Select:
        return Select(
            columns=self._columns,
            from_=self._from,
            joins=self._joins,
            where=self._where,
            group_by=self._group_by,
            having=self._having,
            order_by=self._order_by,
            limit=self._limit,
            offset=self._offset,
        )


# Convenience constructors for common expressions.


def col(name: str, table: str | None = None) -> ColumnRef:
    """Create a column reference."""
    return ColumnRef(name=name, table=table)


def eq(left: Expr, right: Expr) -> BinaryOp:
    return BinaryOp(left=left, op="=", right=right)


def and_(*conditions: Expr) -> Expr:
    """Chain conditions with AND."""
    result: Expr | None = None
    for cond in conditions:
        result = cond if result is None else BinaryOp(left=result, op="AND", right=cond)
    if result is None:
        return Literal(value=True)
    return result


def combine(left: Expr | None, op: str, right: Expr) -> Expr:
    """Fold ``right`` onto ``left`` with ``op`` (AND / OR); ``left`` may be empty."""
    if left is None:
        return right
    return BinaryOp(left=left, op=op, right=right)
