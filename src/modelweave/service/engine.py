"""Engine facade: validate, compile, execute and suggest joins. Shared by the REST API and library callers."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from modelweave.compiler.pipeline import CompilationPipeline
from modelweave.connectors.base import decode_rows
from modelweave.connectors.registry import SourceRegistry
from modelweave.discovery.joins import JoinCandidate, JoinDiscoveryService, JoinHint
from modelweave.federation.engine import FederatedExecutionEngine, output_columns
from modelweave.models.description import QueryDescription, TableReference
from modelweave.models.errors import ValidationResult
from modelweave.models.result import (
    FLAG_EXPRESSION_CLEANUP,
    CompiledQuery,
    ExecutionMode,
    ExecutionResult,
    describe_columns,
)
from modelweave.models.source import ColumnDescriptor, TableDescriptor, TableSchema
from modelweave.settings import Settings

logger = logging.getLogger("modelweave.service")

DescriptionInput = QueryDescription | Mapping[str, Any] | str | bytes


def coerce_description(description: DescriptionInput) -> QueryDescription:
    """Accept a model, a decoded JSON mapping or JSON text.

    Malformed input raises :class:`pydantic.ValidationError`.
    """
    if isinstance(description, QueryDescription):
        return description
    if isinstance(description, (str, bytes)):
        return QueryDescription.model_validate_json(description)
    return QueryDescription.model_validate(description)


class QueryEngine:
    """The boundary between callers and the compiler / execution machinery.

    Stateless per request: the registry is populated at start-up and only
    read afterwards, so one engine serves concurrent requests.
    """

    def __init__(self, settings: Settings | None = None, registry: SourceRegistry | None = None) -> None:
        self.settings = settings or Settings()
        self.registry = registry or SourceRegistry(retries=self.settings.connector_retries)
        self._pipeline = CompilationPipeline(expression_cleanup=self.settings.expression_cleanup)
        self._federated = FederatedExecutionEngine(
            self.registry,
            self._pipeline,
            sub_query_timeout=self.settings.sub_query_timeout_seconds,
            join_timeout=self.settings.join_timeout_seconds,
            connector_timeout=self.settings.connector_timeout_seconds,
        )
        self._discovery = JoinDiscoveryService(min_confidence=self.settings.min_join_confidence)

    # -- helpers -------------------------------------------------------------

    def _needs_federation(self, description: QueryDescription) -> bool:
        if description.is_federated:
            return True
        source_id = description.source_ids[0]
        if len(description.tables) > 1 and source_id in self.registry:
            return not self.registry.get(source_id).supports_joins
        return False

    def _dialect_for(self, source_id: str) -> str:
        if source_id in self.registry:
            return self.registry.get(source_id).dialect
        return self.settings.default_dialect

    @staticmethod
    def _merge(validation: ValidationResult, flags: list[str], warnings: list[str]) -> tuple[list[str], list[str]]:
        flags = list(flags)
        if validation.rewrites and FLAG_EXPRESSION_CLEANUP not in flags:
            flags.append(FLAG_EXPRESSION_CLEANUP)
        merged = [f"[{w.kind}] {w.message}" for w in validation.warnings]
        merged.extend(w for w in warnings if w not in merged)
        return flags, merged

    # -- public API ----------------------------------------------------------

    def validate(self, description: DescriptionInput) -> ValidationResult:
        """Validate without raising; the result says whether the description is usable."""
        return self._pipeline.validator.validate(coerce_description(description))

    def compile(self, description: DescriptionInput, dialect: str | None = None) -> CompiledQuery:
        """Compile a description.

        Single-source descriptions yield one statement, in ``dialect`` or the
        registered source's dialect. Everything else yields a federated plan
        whose ``partitions`` hold one statement per sub-query.

        Raises ``ValidationError`` when the description is invalid and
        ``CompileError`` when the target cannot express it.
        """
        d = coerce_description(description)
        validation = self._pipeline.validate(d)
        if self._needs_federation(d):
            compiled = self._federated.compile(d, validation)
            flags, warnings = self._merge(validation, compiled.flags, compiled.warnings)
            return compiled.model_copy(update={"flags": flags, "warnings": warnings})
        return self._pipeline.compile(d, dialect or self._dialect_for(d.source_ids[0]), validation)

    async def execute(self, description: DescriptionInput, timeout: float | None = None) -> ExecutionResult:
        """Validate, then run on one source or federate across several.

        ``timeout`` bounds the whole request; by default it is the sub-query
        budget plus the join budget.
        """
        started = time.perf_counter()
        d = coerce_description(description)
        validation = self._pipeline.validate(d)
        budget = timeout if timeout is not None else (
            self.settings.sub_query_timeout_seconds + self.settings.join_timeout_seconds
        )
        deadline = time.monotonic() + budget

        if self._needs_federation(d):
            mode = ExecutionMode.FEDERATED
            rows, flags, warnings = await self._federated.execute(d, validation, deadline)
            flags, warnings = self._merge(validation, flags, warnings)
            columns = output_columns(d)
        else:
            mode = ExecutionMode.SINGLE
            source_id = d.source_ids[0]
            connector = self.registry.get(source_id)
            compiled = self._pipeline.compile(d, connector.dialect, validation)
            rowset = await self.registry.execute(
                source_id, compiled, min(self.settings.sub_query_timeout_seconds, budget)
            )
            rows = decode_rows(rowset, compiled)
            flags, warnings = compiled.flags, compiled.warnings
            columns = compiled.columns

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info("Executed %s query over %s: %d rows in %d ms", mode.value, ", ".join(d.source_ids), len(rows), elapsed_ms)
        return ExecutionResult(
            rows=rows,
            columns=describe_columns(columns, rows),
            flags=flags,
            warnings=warnings,
            mode=mode,
            elapsed_ms=elapsed_ms,
        )

    def suggest_joins(
        self,
        tables: Sequence[TableSchema | Mapping[str, Any]],
        hints: Iterable[JoinHint | Mapping[str, Any]] = (),
    ) -> list[JoinCandidate]:
        schemas = [t if isinstance(t, TableSchema) else TableSchema.model_validate(t) for t in tables]
        parsed = [h if isinstance(h, JoinHint) else JoinHint.model_validate(h) for h in hints]
        return self._discovery.suggest(schemas, parsed)

    async def load_schemas(self, references: Sequence[TableReference]) -> list[TableSchema]:
        """Fetch columns and declared keys of each referenced table from its source."""
        timeout = self.settings.connector_timeout_seconds
        schemas = []
        for ref in references:
            columns = await self.registry.list_columns(ref.source_id, ref.table, timeout)
            keys = await self.registry.list_foreign_keys(ref.source_id, ref.table, timeout)
            schemas.append(
                TableSchema(
                    alias=ref.alias, source_id=ref.source_id, table=ref.table, columns=columns, foreign_keys=keys
                )
            )
        return schemas

    async def list_tables(self, source_id: str) -> list[TableDescriptor]:
        return await self.registry.list_tables(source_id, self.settings.connector_timeout_seconds)

    async def list_columns(self, source_id: str, table: str) -> list[ColumnDescriptor]:
        return await self.registry.list_columns(source_id, table, self.settings.connector_timeout_seconds)

    async def close(self) -> None:
        await self.registry.close()
