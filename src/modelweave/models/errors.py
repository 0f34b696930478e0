"""Structured validation findings."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class ViolationKind(StrEnum):
    MISSING_GROUP_BY = "missing_group_by"
    ORPHANED_TABLE = "orphaned_table"
    UNSUPPORTED_AGGREGATE = "unsupported_aggregate"
    AMBIGUOUS_ALIAS = "ambiguous_alias"
    DISCONNECTED_JOIN_GRAPH = "disconnected_join_graph"
    UNKNOWN_REFERENCE = "unknown_reference"
    INVALID_JOIN = "invalid_join"
    INVALID_FILTER = "invalid_filter"
    EXPRESSION_REWRITTEN = "expression_rewritten"


class Violation(BaseModel):
    """A single validation error or warning, with the offending element's path."""

    kind: ViolationKind
    message: str
    path: str | None = None
    suggestions: list[str] = []


class ValidationResult(BaseModel):
    """Result of validating a query description.

    ``rewrites`` maps aggregate aliases to the cleaned expression text that
    compilation must use instead of the original.
    """

    valid: bool
    errors: list[Violation] = []
    warnings: list[Violation] = []
    rewrites: dict[str, str] = {}

    def kinds(self) -> set[ViolationKind]:
        return {v.kind for v in self.errors} | {v.kind for v in self.warnings}
