"""Metadata and row containers exchanged with data-source connectors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class SourceKind(StrEnum):
    RELATIONAL = "relational"
    FLAT_FILE = "flat_file"
    DOCUMENT = "document"


class TableDescriptor(BaseModel):
    name: str
    schema_name: str | None = None


class ColumnDescriptor(BaseModel):
    name: str
    type: str = "unknown"


class ForeignKey(BaseModel):
    """A declared foreign key from a column to another table's column."""

    column: str
    references_table: str
    references_column: str


class TableSchema(BaseModel):
    """Columns and declared keys of one table, as fed to join discovery."""

    alias: str
    source_id: str = ""
    table: str | None = None
    columns: list[ColumnDescriptor] = []
    foreign_keys: list[ForeignKey] = []

    def column(self, name: str) -> ColumnDescriptor | None:
        for c in self.columns:
            if c.name == name:
                return c
        return None


@dataclass(slots=True)
class RowSet:
    """Raw rows returned by a connector, positionally aligned with ``columns``."""

    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row, strict=True)) for row in self.rows]
