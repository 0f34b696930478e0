"""Source metadata endpoints: GET /sources, /sources/{id}/tables, /sources/{id}/tables/{table}/columns."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from modelweave.api.deps import get_engine
from modelweave.api.errors import http_error
from modelweave.api.schemas import (
    ColumnListResponse,
    SourceInfo,
    SourceListResponse,
    TableListResponse,
)
from modelweave.errors import EngineError
from modelweave.service.engine import QueryEngine

router = APIRouter()


@router.get("", response_model=SourceListResponse)
async def list_sources(
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> SourceListResponse:
    """List registered data sources."""
    return SourceListResponse(
        sources=[
            SourceInfo(
                source_id=c.source_id,
                kind=c.kind.value,
                dialect=c.dialect,
                supports_joins=c.supports_joins,
            )
            for c in engine.registry.sources()
        ]
    )


@router.get("/{source_id}/tables", response_model=TableListResponse)
async def list_tables(
    source_id: str,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> TableListResponse:
    try:
        tables = await engine.list_tables(source_id)
    except EngineError as exc:
        raise http_error(exc, lookup=True) from None
    return TableListResponse(source_id=source_id, tables=tables)


@router.get("/{source_id}/tables/{table}/columns", response_model=ColumnListResponse)
async def list_columns(
    source_id: str,
    table: str,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> ColumnListResponse:
    try:
        columns = await engine.list_columns(source_id, table)
    except EngineError as exc:
        raise http_error(exc, lookup=True) from None
    return ColumnListResponse(source_id=source_id, table=table, columns=columns)
