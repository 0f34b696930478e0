"""API request/response Pydantic schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from modelweave.discovery.joins import JoinCandidate, JoinHint
from modelweave.models.description import QueryDescription, TableReference
from modelweave.models.source import ColumnDescriptor, TableDescriptor, TableSchema


class ValidateRequest(BaseModel):
    """Request body for POST /validate."""

    description: QueryDescription


class CompileRequest(BaseModel):
    """Request body for POST /compile."""

    description: QueryDescription
    dialect: str | None = Field(default=None, description="Overrides the source's dialect")


class ExecuteRequest(BaseModel):
    """Request body for POST /execute."""

    description: QueryDescription
    timeout_seconds: float | None = Field(default=None, gt=0)


class ErrorDetail(BaseModel):
    """A single validation error or warning."""

    kind: str
    message: str
    path: str | None = None
    suggestions: list[str] = []


class ValidateResponse(BaseModel):
    """Response body for POST /validate."""

    valid: bool
    errors: list[ErrorDetail] = []
    warnings: list[ErrorDetail] = []
    rewrites: dict[str, str] = {}


class JoinSuggestRequest(BaseModel):
    """Request body for POST /joins/suggest.

    ``tables`` carries schemas directly; ``references`` names registered
    tables whose schemas are fetched from their sources.
    """

    tables: list[TableSchema] = []
    references: list[TableReference] = []
    hints: list[JoinHint] = []


class JoinCandidateInfo(BaseModel):
    left_table: str
    left_column: str
    right_table: str
    right_column: str
    confidence: float
    confidence_level: str
    source: str
    pattern: str
    reason: str = ""
    join_type: str

    @classmethod
    def from_candidate(cls, candidate: JoinCandidate) -> JoinCandidateInfo:
        return cls(
            **candidate.model_dump(mode="json"),
            confidence_level=candidate.confidence_level.value,
        )


class JoinSuggestResponse(BaseModel):
    candidates: list[JoinCandidateInfo] = []


class SourceInfo(BaseModel):
    source_id: str
    kind: str
    dialect: str
    supports_joins: bool


class SourceListResponse(BaseModel):
    """Response for GET /sources."""

    sources: list[SourceInfo] = []


class TableListResponse(BaseModel):
    source_id: str
    tables: list[TableDescriptor] = []


class ColumnListResponse(BaseModel):
    source_id: str
    table: str
    columns: list[ColumnDescriptor] = []


class DialectInfo(BaseModel):
    """Information about a supported dialect."""

    name: str
    capabilities: dict[str, bool] = {}


class DialectListResponse(BaseModel):
    """Response for GET /dialects."""

    dialects: list[DialectInfo] = []


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = ""
