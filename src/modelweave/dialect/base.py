"""Abstract base dialect with capability flags and default SQL compilation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from modelweave.ast.nodes import (
    AliasedExpr,
    Between,
    BinaryOp,
    ColumnRef,
    Expr,
    From,
    InList,
    IsNull,
    Join,
    JoinType,
    Literal,
    OrderByItem,
    RawSQL,
    Select,
    TableName,
)


@dataclass
class DialectCapabilities:
    """Flags indicating what SQL features a dialect supports."""

    supports_right_join: bool = True
    supports_full_join: bool = True
    supports_ilike: bool = False
    supports_nulls_ordering: bool = True
    requires_limit_with_offset: bool = False


class Dialect(ABC):
    """Abstract base for all SQL dialects.

    Provides default SQL compilation; dialects override specific methods.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def capabilities(self) -> DialectCapabilities: ...

    @property
    def sqlglot_dialect(self) -> str:
        """Name of the matching sqlglot dialect (for expression rendering and checks)."""
        return self.name

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Quote an identifier per dialect rules."""

    def format_table_ref(self, table: TableName) -> str:
        if table.schema:
            return f"{self.quote_identifier(table.schema)}.{self.quote_identifier(table.name)}"
        return self.quote_identifier(table.name)

    def unbounded_limit(self) -> str | None:
        """LIMIT value meaning "no limit", for dialects that need LIMIT before OFFSET."""
        return None

    def compile(self, ast: Select) -> str:
        """Render a complete SQL AST to a dialect-specific string."""
        return self.compile_select(ast)

    def compile_select(self, node: Select) -> str:
        parts: list[str] = []

        if node.columns:
            cols = ", ".join(self.compile_expr(c) for c in node.columns)
            parts.append(f"SELECT {cols}")
        else:
            parts.append("SELECT *")

        if node.from_:
            parts.append(f"FROM {self.compile_from(node.from_)}")

        for join in node.joins:
            parts.append(self.compile_join(join))

        if node.where:
            parts.append(f"WHERE {self.compile_expr(node.where)}")

        if node.group_by:
            groups = ", ".join(self.compile_expr(g) for g in node.group_by)
            parts.append(f"GROUP BY {groups}")

        if node.having:
            parts.append(f"HAVING {self.compile_expr(node.having)}")

        if node.order_by:
            orders = ", ".join(self.compile_order_by(o) for o in node.order_by)
            parts.append(f"ORDER BY {orders}")

        if node.limit is not None:
            parts.append(f"LIMIT {node.limit}")
        elif node.offset is not None and self.capabilities.requires_limit_with_offset:
            parts.append(f"LIMIT {self.unbounded_limit()}")

        if node.offset is not None:
            parts.append(f"OFFSET {node.offset}")

        return "\n".join(parts)

    def compile_from(self, node: From) -> str:
        result = self.format_table_ref(node.source)
        if node.alias:
            result += f" AS {self.quote_identifier(node.alias)}"
        return result

    def compile_join(self, node: Join) -> str:
        source = self.format_table_ref(node.source)
        if node.alias:
            source += f" AS {self.quote_identifier(node.alias)}"
        keyword = "FULL OUTER" if node.join_type is JoinType.FULL else node.join_type.value
        parts = [f"{keyword} JOIN {source}"]
        if node.on is not None:
            parts.append(f"ON {self.compile_expr(node.on)}")
        return " ".join(parts)

    def compile_order_by(self, node: OrderByItem) -> str:
        result = self.compile_expr(node.expr)
        result += " DESC" if node.desc else " ASC"
        if node.nulls_last is not None and self.capabilities.supports_nulls_ordering:
            result += " NULLS LAST" if node.nulls_last else " NULLS FIRST"
        return result

    def compile_like(self, left: Expr, right: Expr, negated: bool) -> str:
        op = "NOT LIKE" if negated else "LIKE"
        return f"({self.compile_expr(left)} {op} {self.compile_expr(right)})"

    def compile_expr(self, expr: Expr) -> str:
        """Compile an expression node to SQL string."""
        match expr:
            case Literal(value=None):
                return "NULL"
            case Literal(value=True):
                return "TRUE"
            case Literal(value=False):
                return "FALSE"
            case Literal(value=v) if isinstance(v, str):
                escaped = v.replace("'", "''")
                return f"'{escaped}'"
            case Literal(value=v):
                return str(v)
            case ColumnRef(name=name, table=None):
                return self.quote_identifier(name)
            case ColumnRef(name=name, table=table) if table is not None:
                return f"{self.quote_identifier(table)}.{self.quote_identifier(name)}"
            case AliasedExpr(expr=inner, alias=alias):
                return f"{self.compile_expr(inner)} AS {self.quote_identifier(alias)}"
            case BinaryOp(left=left, op="LIKE", right=right):
                return self.compile_like(left, right, negated=False)
            case BinaryOp(left=left, op="NOT LIKE", right=right):
                return self.compile_like(left, right, negated=True)
            case BinaryOp(left=left, op=op, right=right):
                return f"({self.compile_expr(left)} {op} {self.compile_expr(right)})"
            case IsNull(expr=inner, negated=False):
                return f"({self.compile_expr(inner)} IS NULL)"
            case IsNull(expr=inner, negated=True):
                return f"({self.compile_expr(inner)} IS NOT NULL)"
            case InList(expr=inner, values=values, negated=negated):
                vals = ", ".join(self.compile_expr(v) for v in values)
                op = "NOT IN" if negated else "IN"
                return f"({self.compile_expr(inner)} {op} ({vals}))"
            case Between(expr=inner, low=low, high=high, negated=negated):
                op = "NOT BETWEEN" if negated else "BETWEEN"
                return (
                    f"({self.compile_expr(inner)} {op} "
                    f"{self.compile_expr(low)} AND {self.compile_expr(high)})"
                )
            case RawSQL(sql=sql):
                return sql
            case _:
                raise ValueError(f"Unknown AST node type: {type(expr).__name__}")
