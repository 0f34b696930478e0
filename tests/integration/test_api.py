"""Integration tests for the FastAPI REST API."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from modelweave.api.app import build_engine, create_app
from modelweave.api.deps import init_engine, reset_engine
from modelweave.connectors.registry import SourceRegistry
from modelweave.service.engine import QueryEngine
from modelweave.settings import Settings
from tests.conftest import federated_totals, make_settings


@pytest.fixture
def app(settings: Settings, registry: SourceRegistry):
    app = create_app(settings=settings)
    # Manually init QueryEngine (ASGITransport doesn't trigger lifespan)
    init_engine(QueryEngine(settings, registry))
    yield app
    reset_engine()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _totals(**overrides: Any) -> dict[str, Any]:
    data = federated_totals().model_dump(mode="json", by_alias=True)
    data.update(overrides)
    return data


def _single(**overrides: Any) -> dict[str, Any]:
    data = _totals(**overrides)
    for t in data["tables"]:
        t["source_id"] = "shop"
    return data


# ---------------------------------------------------------------------------
# Health & Dialects
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert "x-request-duration-ms" in response.headers


class TestDialectsEndpoint:
    async def test_list_dialects(self, client: AsyncClient) -> None:
        response = await client.get("/dialects")
        assert response.status_code == 200
        data = response.json()
        names = [d["name"] for d in data["dialects"]]
        assert names == ["clickhouse", "mysql", "postgres", "snowflake", "sqlite"]
        mysql = next(d for d in data["dialects"] if d["name"] == "mysql")
        assert mysql["capabilities"]["supports_full_join"] is False


# ---------------------------------------------------------------------------
# Validate / Compile / Execute
# ---------------------------------------------------------------------------


class TestValidateEndpoint:
    async def test_valid(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={"description": _totals()})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["errors"] == []

    async def test_invalid_is_not_an_http_error(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={"description": _totals(group_by=[])})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["errors"][0]["kind"] == "missing_group_by"
        assert data["errors"][0]["path"] == "columns[0]"

    async def test_malformed_body(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={"description": {"tables": []}})
        assert response.status_code == 422


class TestCompileEndpoint:
    async def test_single_source(self, client: AsyncClient) -> None:
        response = await client.post("/compile", json={"description": _single(), "dialect": "postgres"})
        assert response.status_code == 200
        data = response.json()
        assert data["dialect"] == "postgres"
        assert 'SUM("orders"."amount") AS "total"' in data["statement"]

    async def test_federated(self, client: AsyncClient) -> None:
        response = await client.post("/compile", json={"description": _totals()})
        assert response.status_code == 200
        data = response.json()
        assert data["dialect"] == "federated"
        assert len(data["partitions"]) == 2

    async def test_invalid_description(self, client: AsyncClient) -> None:
        response = await client.post("/compile", json={"description": _single(group_by=[])})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["errors"][0]["kind"] == "missing_group_by"

    async def test_unknown_dialect(self, client: AsyncClient) -> None:
        response = await client.post("/compile", json={"description": _single(), "dialect": "oracle"})
        assert response.status_code == 400
        assert "oracle" in response.json()["detail"]

    async def test_unsupported_join(self, client: AsyncClient) -> None:
        body = _single()
        body["joins"][0]["join_type"] = "full"
        response = await client.post("/compile", json={"description": body, "dialect": "mysql"})
        assert response.status_code == 400
        assert response.json()["detail"]["clause"] == "JOIN"


class TestExecuteEndpoint:
    async def test_federated_totals(self, client: AsyncClient) -> None:
        response = await client.post("/execute", json={"description": _totals()})
        assert response.status_code == 200
        data = response.json()
        assert data["rows"] == [
            {"customers_name": "A", "total": 80},
            {"customers_name": "B", "total": 20},
        ]
        assert data["mode"] == "federated"
        assert [c["name"] for c in data["columns"]] == ["customers_name", "total"]

    async def test_single_source(self, client: AsyncClient) -> None:
        response = await client.post("/execute", json={"description": _single(limit=1)})
        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "single"
        assert data["rows"] == [{"customers_name": "A", "total": 80}]

    async def test_unknown_source(self, client: AsyncClient) -> None:
        body = _single()
        body["tables"][0]["source_id"] = "warehouse"
        response = await client.post("/execute", json={"description": body})
        assert response.status_code == 422
        assert "warehouse" in response.json()["detail"]

    async def test_missing_table(self, client: AsyncClient) -> None:
        body = _single()
        body["tables"][1]["table"] = "clients"
        response = await client.post("/execute", json={"description": body})
        assert response.status_code == 502

    async def test_non_positive_timeout(self, client: AsyncClient) -> None:
        response = await client.post("/execute", json={"description": _totals(), "timeout_seconds": 0})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Join discovery
# ---------------------------------------------------------------------------


class TestJoinSuggestEndpoint:
    async def test_from_schemas(self, client: AsyncClient) -> None:
        response = await client.post(
            "/joins/suggest",
            json={
                "tables": [
                    {"alias": "orders", "columns": [{"name": "customer_id", "type": "integer"}]},
                    {"alias": "customers", "columns": [{"name": "id", "type": "integer"}]},
                ]
            },
        )
        assert response.status_code == 200
        best = response.json()["candidates"][0]
        assert best["pattern"] == "id_pattern"
        assert best["confidence_level"] == "high"
        assert best["join_type"] == "left"

    async def test_from_registered_tables(self, client: AsyncClient) -> None:
        response = await client.post(
            "/joins/suggest",
            json={
                "references": [
                    {"alias": "o", "source_id": "shop", "table": "orders"},
                    {"alias": "c", "source_id": "crm", "table": "customers"},
                ]
            },
        )
        assert response.status_code == 200
        best = response.json()["candidates"][0]
        assert (best["left_table"], best["left_column"], best["right_table"], best["right_column"]) == (
            "o", "customer_id", "c", "id",
        )

    async def test_unknown_reference(self, client: AsyncClient) -> None:
        response = await client.post(
            "/joins/suggest",
            json={"references": [{"alias": "o", "source_id": "warehouse", "table": "orders"}]},
        )
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TestSourcesEndpoint:
    async def test_list_sources(self, client: AsyncClient) -> None:
        response = await client.get("/sources")
        assert response.status_code == 200
        sources = {s["source_id"]: s for s in response.json()["sources"]}
        assert set(sources) == {"crm", "docs", "shop"}
        assert sources["docs"]["supports_joins"] is False
        assert sources["shop"]["dialect"] == "sqlite"

    async def test_tables_and_columns(self, client: AsyncClient) -> None:
        response = await client.get("/sources/docs/tables")
        assert response.status_code == 200
        assert [t["name"] for t in response.json()["tables"]] == ["customers", "tickets"]

        response = await client.get("/sources/shop/tables/orders/columns")
        assert response.status_code == 200
        assert [c["name"] for c in response.json()["columns"]] == ["id", "customer_id", "amount"]

    async def test_unknown_source(self, client: AsyncClient) -> None:
        response = await client.get("/sources/warehouse/tables")
        assert response.status_code == 404

    async def test_unknown_table(self, client: AsyncClient) -> None:
        response = await client.get("/sources/shop/tables/nope/columns")
        assert response.status_code == 404


class TestBuildEngine:
    async def test_registers_configured_sqlite_sources(self, tmp_path: Path) -> None:
        path = tmp_path / "shop.db"
        engine = build_engine(make_settings(sqlite_sources={"files": str(path)}))
        assert "files" in engine.registry
        assert await engine.list_tables("files") == []
        await engine.close()
