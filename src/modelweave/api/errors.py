"""Mapping of engine exceptions to HTTP errors."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from modelweave.dialect.registry import UnsupportedDialectError
from modelweave.errors import (
    CompileError,
    ConnectorError,
    ConnectorReason,
    EngineError,
    ExecutionTimeout,
    UnknownSourceError,
    ValidationError,
)

logger = logging.getLogger("modelweave.api")


def http_error(exc: EngineError, *, lookup: bool = False) -> HTTPException:
    """422 validation, 400 compile, 502 connector, 504 timeout, 500 otherwise.

    With ``lookup`` (metadata routes) unknown sources and missing tables are
    404; for query routes an unknown source makes the description unusable (422).
    """
    match exc:
        case ValidationError():
            return HTTPException(
                status_code=422,
                detail={
                    "message": "Query description is invalid",
                    "errors": [e.model_dump(mode="json") for e in exc.result.errors],
                    "warnings": [w.model_dump(mode="json") for w in exc.result.warnings],
                },
            )
        case UnsupportedDialectError():
            return HTTPException(status_code=400, detail=str(exc))
        case CompileError():
            return HTTPException(
                status_code=400,
                detail={"message": str(exc), "clause": exc.clause, "fragment": exc.fragment},
            )
        case UnknownSourceError():
            return HTTPException(status_code=404 if lookup else 422, detail=str(exc))
        case ConnectorError() if lookup and exc.reason is ConnectorReason.TABLE_NOT_FOUND:
            return HTTPException(status_code=404, detail=str(exc))
        case ConnectorError():
            return HTTPException(status_code=502, detail=str(exc))
        case ExecutionTimeout():
            return HTTPException(status_code=504, detail=str(exc))
    logger.error("Execution failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))
