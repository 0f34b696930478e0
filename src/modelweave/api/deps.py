"""Dependency injection for FastAPI: the QueryEngine singleton."""

from __future__ import annotations

from modelweave.service.engine import QueryEngine

_engine: QueryEngine | None = None


def init_engine(engine: QueryEngine) -> None:
    """Set the global QueryEngine (called at app startup)."""
    global _engine  # noqa: PLW0603
    _engine = engine


def get_engine() -> QueryEngine:
    """FastAPI ``Depends`` provider for QueryEngine."""
    if _engine is None:
        raise RuntimeError("QueryEngine not initialised; call init_engine() first")
    return _engine


def reset_engine() -> None:
    """Clear the global QueryEngine (for tests)."""
    global _engine  # noqa: PLW0603
    _engine = None
