"""MySQL dialect implementation."""

from __future__ import annotations

from modelweave.dialect.base import Dialect, DialectCapabilities
from modelweave.dialect.registry import DialectRegistry


@DialectRegistry.register
class MySQLDialect(Dialect):
    """MySQL dialect: backtick identifiers, no FULL OUTER JOIN, no NULLS FIRST/LAST."""

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            supports_full_join=False,
            supports_nulls_ordering=False,
            requires_limit_with_offset=True,
        )

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("`", "``")
        return f"`{escaped}`"

    def unbounded_limit(self) -> str:
        return "18446744073709551615"


DialectRegistry.alias("mariadb", "mysql")
