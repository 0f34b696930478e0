"""FastAPI application factory for modelweave."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from modelweave import __version__
from modelweave.api.deps import init_engine, reset_engine
from modelweave.api.middleware import RequestBodyLimitMiddleware, RequestTimingMiddleware
from modelweave.api.routers import dialects, joins, queries, sources
from modelweave.api.schemas import HealthResponse
from modelweave.connectors.sqlite import SqliteConnector
from modelweave.service.engine import QueryEngine
from modelweave.settings import Settings

logger = logging.getLogger("modelweave.api")


def build_engine(settings: Settings) -> QueryEngine:
    """Create the engine and register the SQLite sources named in settings."""
    engine = QueryEngine(settings)
    for source_id, path in settings.sqlite_sources.items():
        engine.registry.register(SqliteConnector(source_id, path))
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Create the QueryEngine on start-up and close its sources on shutdown."""
    settings: Settings = app.state.settings
    engine = build_engine(settings)
    init_engine(engine)
    try:
        yield
    finally:
        await engine.close()
        reset_engine()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="modelweave",
        description="Validates, compiles and federates declarative query descriptions across data sources.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware
    app.add_middleware(RequestBodyLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(RequestTimingMiddleware)

    app.include_router(queries.router, tags=["queries"])
    app.include_router(joins.router, prefix="/joins", tags=["joins"])
    app.include_router(sources.router, prefix="/sources", tags=["sources"])
    app.include_router(dialects.router, prefix="/dialects", tags=["dialects"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "modelweave API Server v%s starting (host=%s, port=%d, sources=%s)",
        __version__, settings.api_server_host, settings.effective_port,
        ", ".join(settings.sqlite_sources) or "none",
    )

    uvicorn.run(
        "modelweave.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
