"""Exception taxonomy shared by the compiler, connectors and execution engine."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modelweave.models.errors import ValidationResult


class EngineError(Exception):
    """Base class for every error raised by modelweave."""


class ValidationError(EngineError):
    """The description failed validation; nothing was compiled or executed."""

    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        summary = "; ".join(f"[{e.kind}] {e.message}" for e in result.errors)
        super().__init__(f"Query description is invalid: {summary}")


class CompileError(EngineError):
    """A validated description could not be rendered for the target."""

    def __init__(self, message: str, *, clause: str | None = None, fragment: str | None = None) -> None:
        self.clause = clause
        self.fragment = fragment
        detail = message
        if clause:
            detail = f"{detail} (clause: {clause})"
        if fragment:
            detail = f"{detail}: {fragment}"
        super().__init__(detail)


class ConnectorReason(StrEnum):
    CONNECTION_LOST = "connection_lost"
    AUTH_EXPIRED = "auth_expired"
    TABLE_NOT_FOUND = "table_not_found"
    QUERY_FAILED = "query_failed"


class ConnectorError(EngineError):
    """A data source failed to answer a request."""

    def __init__(self, source_id: str, reason: ConnectorReason | str, message: str) -> None:
        self.source_id = source_id
        self.reason = ConnectorReason(reason)
        super().__init__(f"Source '{source_id}' failed ({self.reason.value}): {message}")

    @property
    def retryable(self) -> bool:
        return self.reason is ConnectorReason.CONNECTION_LOST


class UnknownSourceError(EngineError):
    """A description or request names a source that is not registered."""

    def __init__(self, source_id: str, available: list[str]) -> None:
        self.source_id = source_id
        self.available = available
        listed = ", ".join(available) or "none"
        super().__init__(f"Unknown source '{source_id}'. Registered: {listed}")


class ExecutionError(EngineError):
    """The engine could not produce a result (join, decode or materialization failure)."""


class ExecutionTimeout(ExecutionError):
    """A sub-query, the join step or the whole request exceeded its deadline."""
