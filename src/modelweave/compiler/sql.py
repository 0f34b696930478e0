"""Single-source SQL compilation: QueryDescription -> AST -> dialect SQL."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlglot import exp

from modelweave.ast.builder import QueryBuilder, and_, col, combine, eq
from modelweave.ast.nodes import (
    Between,
    BinaryOp,
    ColumnRef,
    Expr,
    InList,
    IsNull,
    JoinType,
    Literal,
    RawSQL,
    TableName,
)
from modelweave.compiler.expressions import (
    AnalyzedAggregate,
    ExpressionError,
    analyze,
    inline_aliases,
    render,
)
from modelweave.compiler.graph import table_plan
from modelweave.compiler.sqlcheck import validate_sql
from modelweave.dialect.base import Dialect
from modelweave.dialect.registry import DialectRegistry
from modelweave.errors import CompileError
from modelweave.models.description import (
    Connective,
    FilterOperator,
    JoinKind,
    QueryDescription,
    SortDirection,
)
from modelweave.models.result import FLAG_CROSS_JOIN, CompiledQuery, OutputColumn

logger = logging.getLogger("modelweave.compiler")

_JOIN_TYPES: dict[JoinKind, JoinType] = {
    JoinKind.INNER: JoinType.INNER,
    JoinKind.LEFT: JoinType.LEFT,
    JoinKind.RIGHT: JoinType.RIGHT,
    JoinKind.FULL: JoinType.FULL,
}

_COMPARISONS: dict[FilterOperator, str] = {
    FilterOperator.EQ: "=",
    FilterOperator.NEQ: "<>",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "LIKE",
    FilterOperator.NOT_LIKE: "NOT LIKE",
}


def analyze_aggregates(
    description: QueryDescription, rewrites: Mapping[str, str] | None = None
) -> dict[str, AnalyzedAggregate]:
    """Parse every aggregate of a validated description, honouring cleanup rewrites."""
    rewrites = rewrites or {}
    aggregates = description.all_aggregates
    aliases = {a.alias for a in aggregates}
    analyzed: dict[str, AnalyzedAggregate] = {}
    for agg in aggregates:
        text = rewrites.get(agg.alias, agg.expression)
        try:
            item = analyze(agg.alias, text, aliases)
        except ExpressionError as exc:
            raise CompileError(str(exc), clause="SELECT", fragment=text) from None
        if item.problems:
            raise CompileError(item.problems[0], clause="SELECT", fragment=text)
        analyzed[agg.alias] = item
    return analyzed


def resolved_aggregates(
    description: QueryDescription, rewrites: Mapping[str, str] | None = None
) -> dict[str, exp.Expression]:
    """Aggregate trees with alias references inlined, in declaration order."""
    analyzed = analyze_aggregates(description, rewrites)
    try:
        resolved = inline_aliases(analyzed)
    except ExpressionError as exc:
        raise CompileError(str(exc), clause="SELECT") from None
    return {alias: resolved[alias] for alias in analyzed}


def literal(value: Any) -> Literal:
    """Literal node for a filter value; temporal and decimal values render as text."""
    match value:
        case None:
            return Literal.null()
        case bool() | int() | float() | str():
            return Literal(value=value)
        case Decimal():
            return Literal(value=float(value))
        case datetime() | date():
            return Literal.string(value.isoformat())
        case _:
            return Literal.string(str(value))


def predicate(column: Expr, operator: FilterOperator, value: Any) -> Expr:
    """AST predicate for one filter or having condition."""
    match operator:
        case FilterOperator.IS_NULL:
            return IsNull(expr=column)
        case FilterOperator.IS_NOT_NULL:
            return IsNull(expr=column, negated=True)
        case FilterOperator.IN | FilterOperator.NOT_IN:
            return InList(
                expr=column,
                values=[literal(v) for v in value],
                negated=operator is FilterOperator.NOT_IN,
            )
        case FilterOperator.BETWEEN:
            low, high = value
            return Between(expr=column, low=literal(low), high=literal(high))
        case _:
            return BinaryOp(left=column, op=_COMPARISONS[operator], right=literal(value))


def _fold(current: Expr | None, connective: Connective, condition: Expr) -> Expr:
    return combine(current, "OR" if connective is Connective.OR else "AND", condition)


class SingleSourceCompiler:
    """Compiles a description whose tables all live in one relational source.

    Joins are laid out with :func:`table_plan`; aggregate expressions are
    rendered by sqlglot in the target dialect; everything else goes through
    the SQL AST and the registered :class:`Dialect`.
    """

    def compile(
        self,
        description: QueryDescription,
        dialect_name: str,
        rewrites: Mapping[str, str] | None = None,
    ) -> CompiledQuery:
        sources = description.source_ids
        if len(sources) != 1:
            raise CompileError(
                f"single-source compilation needs one source, got {', '.join(sources)}",
                clause="FROM",
            )
        dialect = DialectRegistry.get(dialect_name)
        aggregates = {
            alias: RawSQL(render(tree, dialect.sqlglot_dialect))
            for alias, tree in resolved_aggregates(description, rewrites).items()
        }

        builder = QueryBuilder()
        flags: list[str] = []
        warnings: list[str] = []
        columns: list[OutputColumn] = []

        for c in description.selected_columns:
            builder.select_aliased(col(c.column, c.table), c.output_name)
            columns.append(
                OutputColumn(name=c.output_name, table=c.table, column=c.column, label=c.label)
            )
        for alias, expr in aggregates.items():
            builder.select_aliased(expr, alias)
            columns.append(OutputColumn(name=alias, aggregate=True, label=alias))
        if not columns:
            raise CompileError("description selects no columns", clause="SELECT")

        self._build_from(builder, description, dialect, flags, warnings)

        where: Expr | None = None
        for f in description.filters:
            where = _fold(where, f.connective, predicate(col(f.column, f.table), f.operator, f.value))
        if where is not None:
            builder.where(where)

        if description.group_by:
            builder.group_by(*(col(g.column, g.table) for g in description.group_by))

        outputs = self._output_exprs(description, aggregates)
        having: Expr | None = None
        for h in description.having:
            target = outputs.get(h.target)
            if target is None:
                raise CompileError(f"unknown HAVING target '{h.target}'", clause="HAVING")
            having = _fold(having, h.connective, predicate(target, h.operator, h.value))
        if having is not None:
            builder.having(having)

        for o in description.order_by:
            target = outputs.get(o.target)
            if target is None:
                raise CompileError(f"unknown ORDER BY target '{o.target}'", clause="ORDER BY")
            builder.order_by(target, desc=o.direction is SortDirection.DESC, nulls_last=True)

        if description.limit is not None:
            builder.limit(description.limit)
        if description.offset is not None:
            builder.offset(description.offset)

        sql = dialect.compile(builder.build())
        validation_errors = validate_sql(sql, dialect.name)
        sql_valid = not validation_errors
        warnings.extend(f"SQL validation: {e}" for e in validation_errors)
        return CompiledQuery(
            source_id=sources[0],
            dialect=dialect.name,
            statement=sql,
            columns=columns,
            flags=flags,
            warnings=warnings,
            sql_valid=sql_valid,
        )

    def _build_from(
        self,
        builder: QueryBuilder,
        description: QueryDescription,
        dialect: Dialect,
        flags: list[str],
        warnings: list[str],
    ) -> None:
        plan = table_plan(description)
        root = description.table(plan.root[0])
        assert root is not None
        builder.from_(TableName(root.table, root.schema_name), alias=root.alias)

        for step in plan.steps:
            alias = step.nodes[0]
            ref = description.table(alias)
            assert ref is not None
            table = TableName(ref.table, ref.schema_name)
            if step.is_cross:
                logger.warning("No join condition links '%s'; falling back to CROSS JOIN", alias)
                builder.cross_join(table, alias=alias)
                if FLAG_CROSS_JOIN not in flags:
                    flags.append(FLAG_CROSS_JOIN)
                warnings.append(f"Table '{alias}' has no join condition and is cross joined")
                continue
            assert step.kind is not None
            caps = dialect.capabilities
            if step.kind is JoinKind.FULL and not caps.supports_full_join:
                raise CompileError(
                    f"dialect '{dialect.name}' does not support FULL OUTER JOIN",
                    clause="JOIN",
                    fragment=str(step.conditions[0]),
                )
            if step.kind is JoinKind.RIGHT and not caps.supports_right_join:
                raise CompileError(
                    f"dialect '{dialect.name}' does not support RIGHT JOIN",
                    clause="JOIN",
                    fragment=str(step.conditions[0]),
                )
            on = and_(*(eq(col(pc, pa), col(nc, na)) for pa, pc, na, nc in step.pairs))
            builder.join(table, on=on, join_type=_JOIN_TYPES[step.kind], alias=alias)

    @staticmethod
    def _output_exprs(
        description: QueryDescription, aggregates: dict[str, RawSQL]
    ) -> dict[str, Expr]:
        """Expressions addressable by output name in HAVING and ORDER BY."""
        outputs: dict[str, Expr] = {}
        for c in list(description.group_by) + list(description.columns):
            outputs.setdefault(c.output_name, ColumnRef(name=c.column, table=c.table))
        outputs.update(aggregates)
        return outputs


def compile_sql(
    description: QueryDescription,
    dialect_name: str,
    rewrites: Mapping[str, str] | None = None,
) -> CompiledQuery:
    return SingleSourceCompiler().compile(description, dialect_name, rewrites)

