"""Connector contract shared by every data-source variant."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from modelweave.errors import ExecutionError
from modelweave.models.result import CompiledQuery
from modelweave.models.source import (
    ColumnDescriptor,
    ForeignKey,
    RowSet,
    SourceKind,
    TableDescriptor,
)


class SourceConnector(ABC):
    """One connected data source.

    Implementations raise :class:`~modelweave.errors.ConnectorError` for
    every failure and must be safe to call concurrently: each call borrows
    its own connection for its duration.
    """

    source_id: str

    @property
    @abstractmethod
    def kind(self) -> SourceKind: ...

    @property
    @abstractmethod
    def dialect(self) -> str:
        """Dialect name understood by the compiler (``sqlite``, ``postgres``, ``document`` ...)."""

    @property
    def supports_joins(self) -> bool:
        """Whether several tables of this source can be joined in one statement."""
        return self.kind is not SourceKind.DOCUMENT

    @abstractmethod
    async def list_tables(self) -> list[TableDescriptor]: ...

    @abstractmethod
    async def list_columns(self, table: str) -> list[ColumnDescriptor]: ...

    async def list_foreign_keys(self, table: str) -> list[ForeignKey]:
        return []

    @abstractmethod
    async def execute_query(self, compiled: CompiledQuery) -> RowSet: ...

    async def close(self) -> None:
        return None


def decode_rows(rowset: RowSet, compiled: CompiledQuery) -> list[dict[str, Any]]:
    """Key connector rows by output name.

    Every expected output must be present in the row set; a missing column
    is an error, never a column of nulls.
    """
    present = set(rowset.columns)
    missing = [name for name in compiled.output_names if name not in present]
    if missing:
        raise ExecutionError(
            f"Source '{compiled.source_id}' returned no column(s) {', '.join(missing)}; "
            f"got {', '.join(rowset.columns) or 'none'}"
        )
    positions = [(name, rowset.columns.index(name)) for name in compiled.output_names]
    return [{name: row[i] for name, i in positions} for row in rowset.rows]
