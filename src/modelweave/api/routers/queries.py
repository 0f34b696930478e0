"""Query endpoints: POST /validate, /compile, /execute."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from modelweave.api.deps import get_engine
from modelweave.api.errors import http_error
from modelweave.api.schemas import (
    CompileRequest,
    ErrorDetail,
    ExecuteRequest,
    ValidateRequest,
    ValidateResponse,
)
from modelweave.errors import EngineError
from modelweave.models.result import CompiledQuery, ExecutionResult
from modelweave.service.engine import QueryEngine

router = APIRouter()


@router.post("/validate", response_model=ValidateResponse)
async def validate_description(
    body: ValidateRequest,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> ValidateResponse:
    """Validate a query description; never fails on an invalid description."""
    result = engine.validate(body.description)
    return ValidateResponse(
        valid=result.valid,
        errors=[
            ErrorDetail(kind=e.kind, message=e.message, path=e.path, suggestions=e.suggestions)
            for e in result.errors
        ],
        warnings=[
            ErrorDetail(kind=w.kind, message=w.message, path=w.path, suggestions=w.suggestions)
            for w in result.warnings
        ],
        rewrites=result.rewrites,
    )


@router.post("/compile", response_model=CompiledQuery)
async def compile_description(
    body: CompileRequest,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> CompiledQuery:
    """Compile to one statement, or to a federated plan for multi-source descriptions."""
    try:
        return engine.compile(body.description, body.dialect)
    except EngineError as exc:
        raise http_error(exc) from None


@router.post("/execute", response_model=ExecutionResult)
async def execute_description(
    body: ExecuteRequest,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> ExecutionResult:
    """Execute a description against the registered sources."""
    try:
        return await engine.execute(body.description, timeout=body.timeout_seconds)
    except EngineError as exc:
        raise http_error(exc) from None
