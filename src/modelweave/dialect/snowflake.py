"""Snowflake dialect implementation."""

from __future__ import annotations

from modelweave.ast.nodes import Expr
from modelweave.dialect.base import Dialect, DialectCapabilities
from modelweave.dialect.registry import DialectRegistry


@DialectRegistry.register
class SnowflakeDialect(Dialect):
    """Snowflake dialect: quoted identifiers are case-sensitive, ILIKE available."""

    @property
    def name(self) -> str:
        return "snowflake"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(supports_ilike=True)

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def compile_like(self, left: Expr, right: Expr, negated: bool) -> str:
        op = "NOT ILIKE" if negated else "ILIKE"
        return f"({self.compile_expr(left)} {op} {self.compile_expr(right)})"
