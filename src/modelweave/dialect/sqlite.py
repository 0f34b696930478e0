"""SQLite dialect implementation (also used for flat-file sources)."""

from __future__ import annotations

from modelweave.ast.nodes import TableName
from modelweave.dialect.base import Dialect, DialectCapabilities
from modelweave.dialect.registry import DialectRegistry


@DialectRegistry.register
class SQLiteDialect(Dialect):
    """SQLite dialect: RIGHT/FULL joins need SQLite 3.39+."""

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(requires_limit_with_offset=True)

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def format_table_ref(self, table: TableName) -> str:
        # Schemas are attached databases in SQLite; "main" is implicit.
        if table.schema and table.schema != "main":
            return f"{self.quote_identifier(table.schema)}.{self.quote_identifier(table.name)}"
        return self.quote_identifier(table.name)

    def unbounded_limit(self) -> str:
        return "-1"
