"""Tests for the SQLite, flat-file and registry connector layer."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from modelweave.connectors.base import decode_rows
from modelweave.connectors.flatfile import FlatFileConnector, coerce_cell
from modelweave.connectors.registry import SourceRegistry
from modelweave.connectors.sqlite import SqliteConnector, sqlite_type
from modelweave.errors import ConnectorError, ConnectorReason, ExecutionError, ExecutionTimeout, UnknownSourceError
from modelweave.models.result import CompiledQuery, OutputColumn
from modelweave.models.source import RowSet, SourceKind
from tests.conftest import ORDERS, FlakyConnector, SlowConnector


def _sql(statement: str, *names: str, source_id: str = "shop") -> CompiledQuery:
    return CompiledQuery(
        source_id=source_id,
        dialect="sqlite",
        statement=statement,
        columns=[OutputColumn(name=n) for n in names],
    )


class TestSqliteConnector:
    async def test_query(self, shop: SqliteConnector) -> None:
        rowset = await shop.execute_query(
            _sql('SELECT "id" AS "orders_id", "amount" AS "orders_amount" FROM "orders" ORDER BY "id"')
        )
        assert rowset.columns == ["orders_id", "orders_amount"]
        assert rowset.rows == [(1, 50), (2, 30), (3, 20)]

    async def test_metadata(self, shop: SqliteConnector) -> None:
        assert [t.name for t in await shop.list_tables()] == ["customers", "orders"]
        columns = await shop.list_columns("orders")
        assert [(c.name, c.type) for c in columns] == [
            ("id", "integer"),
            ("customer_id", "integer"),
            ("amount", "integer"),
        ]

    async def test_unknown_table(self, shop: SqliteConnector) -> None:
        with pytest.raises(ConnectorError) as exc_info:
            await shop.list_columns("nope")
        assert exc_info.value.reason is ConnectorReason.TABLE_NOT_FOUND

        with pytest.raises(ConnectorError) as exc_info:
            await shop.execute_query(_sql('SELECT * FROM "nope"'))
        assert exc_info.value.reason is ConnectorReason.TABLE_NOT_FOUND

    async def test_bad_sql(self, shop: SqliteConnector) -> None:
        with pytest.raises(ConnectorError) as exc_info:
            await shop.execute_query(_sql('SELECT "orders"."missing" FROM "orders"'))
        assert exc_info.value.reason is ConnectorReason.QUERY_FAILED
        assert not exc_info.value.retryable

    async def test_foreign_keys(self) -> None:
        connector = SqliteConnector("fk")
        connector.execute_script(
            'CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT);'
            'CREATE TABLE orders (id INTEGER, customer_id INTEGER REFERENCES customers(id));'
        )
        keys = await connector.list_foreign_keys("orders")
        assert [(k.column, k.references_table, k.references_column) for k in keys] == [
            ("customer_id", "customers", "id")
        ]
        await connector.close()

    async def test_separate_instances_do_not_share_data(self) -> None:
        a = SqliteConnector.from_rows("a", {"t": [{"x": 1}]})
        b = SqliteConnector("b")
        assert [t.name for t in await b.list_tables()] == []
        await a.close()
        await b.close()

    def test_sqlite_type(self) -> None:
        assert sqlite_type([1, None, 2]) == "INTEGER"
        assert sqlite_type([1, 2.5]) == "REAL"
        assert sqlite_type(["a", 1]) == "TEXT"
        assert sqlite_type([None]) == "TEXT"


class TestFlatFile:
    def test_coerce_cell(self) -> None:
        assert coerce_cell("") is None
        assert coerce_cell(" 42 ") == 42
        assert coerce_cell("4.5") == 4.5
        assert coerce_cell("DE") == "DE"

    async def test_csv(self, tmp_path: Path) -> None:
        path = tmp_path / "orders.csv"
        path.write_text("id,customer_id,amount\n1,1,50\n2,1,\n", encoding="utf-8")
        connector = FlatFileConnector.from_csv("files", {"orders": path})
        assert connector.kind is SourceKind.FLAT_FILE
        assert connector.dialect == "sqlite"
        assert connector.supports_joins
        rowset = await connector.execute_query(
            _sql('SELECT "amount" AS "orders_amount" FROM "orders" ORDER BY "id"', source_id="files")
        )
        assert rowset.rows == [(50,), (None,)]
        await connector.close()


class TestDecodeRows:
    def test_rows_keyed_by_output_name(self) -> None:
        compiled = _sql("", "b", "a")
        rows = decode_rows(RowSet(columns=["a", "b"], rows=[(1, 2)]), compiled)
        assert rows == [{"b": 2, "a": 1}]

    def test_missing_column_is_an_error(self) -> None:
        with pytest.raises(ExecutionError, match="orders_amount"):
            decode_rows(RowSet(columns=["orders_id"], rows=[]), _sql("", "orders_id", "orders_amount"))


class TestSourceRegistry:
    async def test_unknown_source(self) -> None:
        registry = SourceRegistry()
        with pytest.raises(UnknownSourceError) as exc_info:
            registry.get("nope")
        assert exc_info.value.source_id == "nope"

    def test_duplicate_registration(self, shop: SqliteConnector) -> None:
        registry = SourceRegistry()
        registry.register(shop)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(shop)

    async def test_connection_lost_is_retried(self) -> None:
        flaky = FlakyConnector("flaky", failures=1, reason=ConnectorReason.CONNECTION_LOST)
        flaky.load_rows("orders", ORDERS)
        registry = SourceRegistry(retries=1)
        registry.register(flaky)
        rowset = await registry.execute("flaky", _sql('SELECT "id" AS "x" FROM "orders"', "x"), 5.0)
        assert len(rowset.rows) == 3
        assert flaky.calls == 2
        await registry.close()

    async def test_retries_exhausted(self) -> None:
        flaky = FlakyConnector("flaky", failures=5, reason=ConnectorReason.CONNECTION_LOST)
        registry = SourceRegistry(retries=1)
        registry.register(flaky)
        with pytest.raises(ConnectorError):
            await registry.execute("flaky", _sql("SELECT 1 AS x", "x"), 5.0)
        assert flaky.calls == 2
        await registry.close()

    async def test_query_failure_not_retried(self) -> None:
        flaky = FlakyConnector("flaky", failures=1, reason=ConnectorReason.QUERY_FAILED)
        registry = SourceRegistry(retries=3)
        registry.register(flaky)
        with pytest.raises(ConnectorError):
            await registry.execute("flaky", _sql("SELECT 1 AS x", "x"), 5.0)
        assert flaky.calls == 1
        await registry.close()

    async def test_timeout(self) -> None:
        slow = SlowConnector("slow", delay=5.0)
        registry = SourceRegistry()
        registry.register(slow)
        with pytest.raises(ExecutionTimeout):
            await registry.execute("slow", _sql("SELECT 1 AS x", "x"), 0.05)
        assert slow.cancelled
        await registry.close()

    async def test_concurrent_queries(self, shop: SqliteConnector) -> None:
        registry = SourceRegistry()
        registry.register(shop)
        compiled = _sql('SELECT COUNT(*) AS "n" FROM "orders"', "n")
        results = await asyncio.gather(*(registry.execute("shop", compiled, 5.0) for _ in range(5)))
        assert all(r.rows == [(3,)] for r in results)
