"""Shared test fixtures for modelweave."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from modelweave.connectors.document import InMemoryDocumentConnector
from modelweave.connectors.registry import SourceRegistry
from modelweave.connectors.sqlite import SqliteConnector
from modelweave.errors import ConnectorError, ConnectorReason
from modelweave.models.description import QueryDescription
from modelweave.models.result import CompiledQuery
from modelweave.models.source import RowSet
from modelweave.service.engine import QueryEngine
from modelweave.settings import Settings

ORDERS = [
    {"id": 1, "customer_id": 1, "amount": 50},
    {"id": 2, "customer_id": 1, "amount": 30},
    {"id": 3, "customer_id": 2, "amount": 20},
]

CUSTOMERS = [
    {"id": 1, "name": "A", "country": "DE"},
    {"id": 2, "name": "B", "country": "US"},
]


class SlowConnector(SqliteConnector):
    """SQLite source that waits before answering; records completion and cancellation."""

    def __init__(self, source_id: str, delay: float) -> None:
        super().__init__(source_id)
        self.delay = delay
        self.completed = 0
        self.cancelled = False

    async def execute_query(self, compiled: CompiledQuery) -> RowSet:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        result = await super().execute_query(compiled)
        self.completed += 1
        return result


class FlakyConnector(SqliteConnector):
    """SQLite source failing its first ``failures`` queries with ``reason``."""

    def __init__(self, source_id: str, failures: int, reason: ConnectorReason) -> None:
        super().__init__(source_id)
        self.failures = failures
        self.reason = reason
        self.calls = 0

    async def execute_query(self, compiled: CompiledQuery) -> RowSet:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectorError(self.source_id, self.reason, "simulated failure")
        return await super().execute_query(compiled)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "sub_query_timeout_seconds": 5.0,
        "join_timeout_seconds": 5.0,
        "connector_timeout_seconds": 5.0,
        "connector_retries": 1,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def shop() -> SqliteConnector:
    return SqliteConnector.from_rows("shop", {"orders": ORDERS, "customers": CUSTOMERS})


@pytest.fixture
def crm() -> SqliteConnector:
    return SqliteConnector.from_rows("crm", {"customers": CUSTOMERS})


@pytest.fixture
def docs() -> InMemoryDocumentConnector:
    return InMemoryDocumentConnector(
        "docs",
        {
            "customers": [
                {"id": "1", "name": "A", "tier": "gold"},
                {"id": "2", "name": "B", "tier": "silver"},
            ],
            "tickets": [
                {"id": 10, "customer_id": 1, "severity": 3},
                {"id": 11, "customer_id": 1, "severity": 1},
                {"id": 12, "customer_id": 2, "severity": 2},
            ],
        },
    )


@pytest.fixture
async def registry(
    shop: SqliteConnector, crm: SqliteConnector, docs: InMemoryDocumentConnector
) -> Any:
    reg = SourceRegistry(retries=1)
    reg.register(shop)
    reg.register(crm)
    reg.register(docs)
    yield reg
    await reg.close()


@pytest.fixture
def engine(settings: Settings, registry: SourceRegistry) -> QueryEngine:
    return QueryEngine(settings, registry)


def federated_totals() -> QueryDescription:
    """Orders (shop) joined to customers (crm): total amount per customer name."""
    return QueryDescription.model_validate(
        {
            "tables": [
                {"alias": "orders", "source_id": "shop", "table": "orders"},
                {"alias": "customers", "source_id": "crm", "table": "customers"},
            ],
            "columns": [{"table": "customers", "column": "name"}],
            "joins": [
                {
                    "left_table": "orders",
                    "left_column": "customer_id",
                    "right_table": "customers",
                    "right_column": "id",
                    "join_type": "inner",
                }
            ],
            "group_by": [{"table": "customers", "column": "name"}],
            "aggregates": [{"expression": "SUM(orders.amount)", "alias": "total"}],
            "order_by": [{"target": "total", "direction": "desc"}],
        }
    )


@pytest.fixture
def totals_description() -> QueryDescription:
    return federated_totals()
