"""Federated execution: partition, fan out sub-queries concurrently, hash join, materialize."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from modelweave.compiler.expressions import AnalyzedAggregate
from modelweave.compiler.pipeline import CompilationPipeline
from modelweave.compiler.sql import analyze_aggregates
from modelweave.connectors.base import decode_rows
from modelweave.connectors.registry import SourceRegistry
from modelweave.errors import EngineError, ExecutionError, ExecutionTimeout
from modelweave.federation.hashjoin import Deadline, cross_join, hash_join
from modelweave.federation.materializer import ResultMaterializer
from modelweave.federation.partition import FederatedPlan, Partition, plan_federation
from modelweave.models.description import QueryDescription
from modelweave.models.errors import ValidationResult
from modelweave.models.result import (
    FLAG_CROSS_JOIN,
    CompiledQuery,
    OutputColumn,
)

logger = logging.getLogger("modelweave.federation")

FEDERATED_DIALECT = "federated"

Row = dict[str, Any]


def output_columns(description: QueryDescription) -> list[OutputColumn]:
    columns = [
        OutputColumn(name=c.output_name, table=c.table, column=c.column, label=c.label)
        for c in description.selected_columns
    ]
    columns.extend(
        OutputColumn(name=a.alias, aggregate=True, label=a.alias) for a in description.all_aggregates
    )
    return columns


def _first_error(group: BaseExceptionGroup) -> BaseException:
    first = group.exceptions[0]
    while isinstance(first, BaseExceptionGroup):
        first = first.exceptions[0]
    return first


class FederatedExecutionEngine:
    """Executes descriptions whose tables span several sources (or unjoinable collections).

    Holds no per-request state: every call builds its own plan, task group
    and intermediate rows.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        pipeline: CompilationPipeline,
        *,
        sub_query_timeout: float = 30.0,
        join_timeout: float = 60.0,
        connector_timeout: float = 10.0,
    ) -> None:
        self._registry = registry
        self._pipeline = pipeline
        self._sub_query_timeout = sub_query_timeout
        self._join_timeout = join_timeout
        self._connector_timeout = connector_timeout

    # -- planning --------------------------------------------------------------------

    def plan(
        self, description: QueryDescription, validation: ValidationResult
    ) -> tuple[FederatedPlan, dict[str, AnalyzedAggregate]]:
        """Partition and compile every sub-query with its source's dialect."""
        analyzed = analyze_aggregates(description, validation.rewrites)
        plan = plan_federation(
            description, analyzed, lambda s: self._registry.get(s).supports_joins
        )
        checked = ValidationResult(valid=True)
        for p in plan.partitions:
            if p.columns:
                dialect = self._registry.get(p.source_id).dialect
                p.compiled = self._pipeline.compile(p.sub_description(description), dialect, checked)
        return plan, analyzed

    def compile(self, description: QueryDescription, validation: ValidationResult) -> CompiledQuery:
        """The federated plan as a :class:`CompiledQuery` with one entry per partition."""
        plan, _ = self.plan(description, validation)
        flags = [FLAG_CROSS_JOIN] if plan.join_plan.has_cross_join else []
        return CompiledQuery(
            source_id=None,
            dialect=FEDERATED_DIALECT,
            columns=output_columns(description),
            flags=flags,
            partitions=[p.compiled for p in plan.partitions if p.compiled is not None],
        )

    # -- execution -------------------------------------------------------------------

    async def execute(
        self,
        description: QueryDescription,
        validation: ValidationResult,
        deadline: float,
    ) -> tuple[list[Row], list[str], list[str]]:
        """Run the description; returns ``(rows, flags, warnings)``.

        ``deadline`` is an absolute ``time.monotonic()`` value bounding the
        whole request. Any failing, timed-out or cancelled partition aborts
        the request before the join starts.
        """
        plan, analyzed = self.plan(description, validation)
        await self._fill_empty_partitions(description, plan, deadline)
        logger.info(
            "Federating %d partition(s) over source(s) %s",
            len(plan.partitions), ", ".join(description.source_ids),
        )

        results: dict[int, list[Row]] = {}
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = {
                    p.index: tg.create_task(self._run_partition(p, deadline), name=f"partition-{p.index}")
                    for p in plan.partitions
                }
        except ExceptionGroup as group:
            first = _first_error(group)
            if isinstance(first, EngineError):
                raise first from None
            raise ExecutionError(f"partition failed: {first}") from first
        for index, task in tasks.items():
            results[index] = task.result()

        flags: list[str] = []
        warnings: list[str] = []
        if plan.join_plan.has_cross_join:
            flags.append(FLAG_CROSS_JOIN)
            warnings.append("No join condition links some partitions; rows are cross joined")

        join_budget = min(self._join_timeout, deadline - time.monotonic())
        if join_budget <= 0:
            raise ExecutionTimeout("request deadline passed before the in-memory join")
        join_deadline = Deadline(time.monotonic() + join_budget)
        materializer = ResultMaterializer(description, analyzed, plan.residual_filters)
        try:
            async with asyncio.timeout(join_budget):
                rows = await asyncio.to_thread(
                    self._join_and_materialize, plan, results, materializer, join_deadline
                )
        except TimeoutError:
            raise ExecutionTimeout(f"in-memory join exceeded {join_budget:g}s") from None
        return rows, flags, warnings

    async def _fill_empty_partitions(
        self, description: QueryDescription, plan: FederatedPlan, deadline: float
    ) -> None:
        """Partitions that contribute only cardinality still need one column to fetch."""
        for p in plan.partitions:
            if p.compiled is not None:
                continue
            alias = p.aliases[0]
            ref = description.table(alias)
            assert ref is not None
            columns = await self._registry.list_columns(
                p.source_id, ref.table, min(self._connector_timeout, deadline - time.monotonic())
            )
            if not columns:
                raise ExecutionError(f"table '{ref.table}' of source '{p.source_id}' has no columns")
            p.columns.append((alias, columns[0].name))
            dialect = self._registry.get(p.source_id).dialect
            sub = p.sub_description(description)
            p.compiled = self._pipeline.compile(sub, dialect, ValidationResult(valid=True))

    async def _run_partition(self, partition: Partition, deadline: float) -> list[Row]:
        assert partition.compiled is not None
        budget = min(self._sub_query_timeout, deadline - time.monotonic())
        if budget <= 0:
            raise ExecutionTimeout("request deadline passed before sub-query start")
        rowset = await self._registry.execute(partition.source_id, partition.compiled, budget)
        return decode_rows(rowset, partition.compiled)

    @staticmethod
    def _join_and_materialize(
        plan: FederatedPlan,
        results: dict[int, list[Row]],
        materializer: ResultMaterializer,
        deadline: Deadline,
    ) -> list[Row]:
        root = plan.partition_of(plan.join_plan.root[0])
        rows = results[root.index]
        columns = list(root.output_names)
        for step in plan.join_plan.steps:
            other = plan.partition_of(step.nodes[0])
            other_rows = results[other.index]
            if step.is_cross:
                rows = cross_join(rows, other_rows, deadline)
            else:
                assert step.kind is not None
                pairs = [
                    (f"{pa}_{pc}", f"{na}_{nc}") for pa, pc, na, nc in step.pairs
                ]
                rows = hash_join(
                    rows, other_rows, pairs, step.kind, columns, other.output_names, deadline
                )
            columns.extend(other.output_names)
        return materializer.materialize(rows, deadline)
