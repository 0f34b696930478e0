"""PostgreSQL dialect implementation."""

from __future__ import annotations

from modelweave.ast.nodes import Expr
from modelweave.dialect.base import Dialect, DialectCapabilities
from modelweave.dialect.registry import DialectRegistry


@DialectRegistry.register
class PostgresDialect(Dialect):
    """PostgreSQL dialect: double-quoted identifiers, ILIKE, NULLS ordering."""

    @property
    def name(self) -> str:
        return "postgres"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(supports_ilike=True)

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def compile_like(self, left: Expr, right: Expr, negated: bool) -> str:
        # LIKE is case sensitive on Postgres; descriptions use the
        # case-insensitive semantics of the other engines.
        op = "NOT ILIKE" if negated else "ILIKE"
        return f"({self.compile_expr(left)} {op} {self.compile_expr(right)})"


DialectRegistry.alias("postgresql", "postgres")
