"""Join discovery endpoint: POST /joins/suggest."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from modelweave.api.deps import get_engine
from modelweave.api.errors import http_error
from modelweave.api.schemas import JoinCandidateInfo, JoinSuggestRequest, JoinSuggestResponse
from modelweave.errors import EngineError
from modelweave.service.engine import QueryEngine

router = APIRouter()


@router.post("/suggest", response_model=JoinSuggestResponse)
async def suggest_joins(
    body: JoinSuggestRequest,
    engine: QueryEngine = Depends(get_engine),  # noqa: B008
) -> JoinSuggestResponse:
    """Rank join candidates between the given tables. Suggestions are never applied."""
    tables = list(body.tables)
    if body.references:
        try:
            tables.extend(await engine.load_schemas(body.references))
        except EngineError as exc:
            raise http_error(exc, lookup=True) from None
    candidates = engine.suggest_joins(tables, body.hints)
    return JoinSuggestResponse(candidates=[JoinCandidateInfo.from_candidate(c) for c in candidates])
