"""Relational connector backed by SQLite (file or shared in-memory database)."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from modelweave.connectors.base import SourceConnector
from modelweave.errors import ConnectorError, ConnectorReason
from modelweave.models.result import CompiledQuery
from modelweave.models.source import (
    ColumnDescriptor,
    ForeignKey,
    RowSet,
    SourceKind,
    TableDescriptor,
)

logger = logging.getLogger("modelweave.connectors")


def sqlite_type(values: Iterable[Any]) -> str:
    """Column affinity for a list of Python values."""
    seen: set[type] = {type(v) for v in values if v is not None}
    if not seen:
        return "TEXT"
    if seen <= {int, bool}:
        return "INTEGER"
    if seen <= {int, float, bool}:
        return "REAL"
    return "TEXT"


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteConnector(SourceConnector):
    """SQLite source; statements run in worker threads on a per-call connection.

    ``database=":memory:"`` creates a private shared-cache database that
    lives as long as the connector, so concurrent calls see the same data.
    """

    def __init__(self, source_id: str, database: str | Path = ":memory:") -> None:
        self.source_id = source_id
        self._keeper: sqlite3.Connection | None = None
        if str(database) == ":memory:":
            self._target = f"file:modelweave-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
            self._keeper = self._connect()
        else:
            self._target = str(database)
            self._uri = False

    @property
    def kind(self) -> SourceKind:
        return SourceKind.RELATIONAL

    @property
    def dialect(self) -> str:
        return "sqlite"

    @classmethod
    def from_rows(
        cls, source_id: str, tables: Mapping[str, list[dict[str, Any]]]
    ) -> SqliteConnector:
        """In-memory source pre-loaded with ``{table: [row dicts]}``."""
        connector = cls(source_id)
        for name, rows in tables.items():
            connector.load_rows(name, rows)
        return connector

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._target, uri=self._uri, check_same_thread=False)

    # -- loading -----------------------------------------------------------------

    def load_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        columns: list[str] | None = None,
    ) -> None:
        """Create ``table`` and insert ``rows``; column types are inferred from values."""
        if columns is None:
            columns = list(dict.fromkeys(k for row in rows for k in row))
        if not columns:
            raise ValueError(f"table '{table}' has no columns")
        ddl = ", ".join(
            f"{_quote(c)} {sqlite_type(row.get(c) for row in rows)}" for c in columns
        )
        placeholders = ", ".join("?" for _ in columns)
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"CREATE TABLE {_quote(table)} ({ddl})")
                conn.executemany(
                    f"INSERT INTO {_quote(table)} VALUES ({placeholders})",
                    [tuple(row.get(c) for c in columns) for row in rows],
                )
        finally:
            conn.close()

    def execute_script(self, script: str) -> None:
        conn = self._connect()
        try:
            conn.executescript(script)
        finally:
            conn.close()

    # -- connector contract --------------------------------------------------------

    async def list_tables(self) -> list[TableDescriptor]:
        rowset = await self._run(
            "SELECT name FROM sqlite_master WHERE type IN ('table', 'view') "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [TableDescriptor(name=row[0]) for row in rowset.rows]

    async def list_columns(self, table: str) -> list[ColumnDescriptor]:
        rowset = await self._run(f"PRAGMA table_info({_quote(table)})")
        if not rowset.rows:
            raise ConnectorError(self.source_id, ConnectorReason.TABLE_NOT_FOUND, f"no table '{table}'")
        return [ColumnDescriptor(name=row[1], type=(row[2] or "unknown").lower()) for row in rowset.rows]

    async def list_foreign_keys(self, table: str) -> list[ForeignKey]:
        rowset = await self._run(f"PRAGMA foreign_key_list({_quote(table)})")
        return [
            ForeignKey(column=row[3], references_table=row[2], references_column=row[4])
            for row in rowset.rows
        ]

    async def execute_query(self, compiled: CompiledQuery) -> RowSet:
        if not isinstance(compiled.statement, str):
            raise ConnectorError(
                self.source_id, ConnectorReason.QUERY_FAILED, "expected a SQL statement"
            )
        return await self._run(compiled.statement)

    async def close(self) -> None:
        if self._keeper is not None:
            self._keeper.close()
            self._keeper = None

    async def _run(self, sql: str) -> RowSet:
        logger.debug("Source '%s' executing:\n%s", self.source_id, sql)
        return await asyncio.to_thread(self._execute_sync, sql)

    def _execute_sync(self, sql: str) -> RowSet:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise ConnectorError(self.source_id, ConnectorReason.CONNECTION_LOST, str(exc)) from exc
        try:
            cursor = conn.execute(sql)
            columns = [d[0] for d in cursor.description or []]
            return RowSet(columns=columns, rows=[tuple(r) for r in cursor.fetchall()])
        except sqlite3.OperationalError as exc:
            raise ConnectorError(self.source_id, _reason(exc), str(exc)) from exc
        except sqlite3.Error as exc:
            raise ConnectorError(self.source_id, ConnectorReason.QUERY_FAILED, str(exc)) from exc
        finally:
            conn.close()


def _reason(exc: sqlite3.OperationalError) -> ConnectorReason:
    message = str(exc).lower()
    if "no such table" in message:
        return ConnectorReason.TABLE_NOT_FOUND
    if "locked" in message or "unable to open" in message or "disk i/o" in message:
        return ConnectorReason.CONNECTION_LOST
    return ConnectorReason.QUERY_FAILED
