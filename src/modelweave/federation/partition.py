"""Partitioning of a multi-source description into independently executable sub-queries."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import networkx as nx

from modelweave.compiler.expressions import AnalyzedAggregate
from modelweave.compiler.graph import JoinPlan, null_supplying, plan_joins
from modelweave.models.description import (
    Connective,
    FilterPredicate,
    JoinCondition,
    QueryDescription,
    SelectedColumn,
)
from modelweave.models.result import CompiledQuery


@dataclass
class Partition:
    """Tables of one source that execute as a single sub-query."""

    index: int
    source_id: str
    aliases: list[str]
    joins: list[JoinCondition] = field(default_factory=list)
    columns: list[tuple[str, str]] = field(default_factory=list)
    filters: list[FilterPredicate] = field(default_factory=list)
    compiled: CompiledQuery | None = None

    @property
    def output_names(self) -> list[str]:
        return [f"{t}_{c}" for t, c in self.columns]

    def sub_description(self, description: QueryDescription) -> QueryDescription:
        """Description of just this partition: its tables, local joins and pushed filters."""
        tables = [t for t in description.tables if t.alias in self.aliases]
        return QueryDescription(
            tables=tables,
            primary_table=self.aliases[0],
            columns=[SelectedColumn(table=t, column=c) for t, c in self.columns],
            joins=self.joins,
            filters=self.filters,
        )


@dataclass
class FederatedPlan:
    partitions: list[Partition]
    join_plan: JoinPlan
    residual_filters: list[FilterPredicate]

    def partition_of(self, alias: str) -> Partition:
        for p in self.partitions:
            if alias in p.aliases:
                return p
        raise KeyError(alias)


def split_partitions(
    description: QueryDescription, supports_joins: Callable[[str], bool]
) -> list[Partition]:
    """Maximal same-source groups connected by same-source joins, in table-list order.

    Sources that cannot join (document stores) get one partition per table.
    """
    order = {a: i for i, a in enumerate(description.aliases)}
    groups: list[tuple[str, list[str]]] = []
    for source_id in description.source_ids:
        aliases = [t.alias for t in description.tables if t.source_id == source_id]
        if not supports_joins(source_id):
            groups.extend((source_id, [a]) for a in aliases)
            continue
        graph: nx.Graph[str] = nx.Graph()
        graph.add_nodes_from(aliases)
        members = set(aliases)
        for j in description.joins:
            if j.left_table in members and j.right_table in members and j.left_table != j.right_table:
                graph.add_edge(j.left_table, j.right_table)
        for component in nx.connected_components(graph):
            groups.append((source_id, sorted(component, key=order.__getitem__)))

    groups.sort(key=lambda g: order[g[1][0]])
    partitions = []
    for i, (source_id, aliases) in enumerate(groups):
        members = set(aliases)
        local = [j for j in description.joins if j.left_table in members and j.right_table in members]
        partitions.append(Partition(index=i, source_id=source_id, aliases=aliases, joins=local))
    return partitions


def plan_federation(
    description: QueryDescription,
    analyzed: dict[str, AnalyzedAggregate],
    supports_joins: Callable[[str], bool],
) -> FederatedPlan:
    """Partition the description, place pushable filters and collect required columns."""
    partitions = split_partitions(description, supports_joins)
    primary = next(i for i, p in enumerate(partitions) if description.primary in p.aliases)
    join_plan = plan_joins(description, [p.aliases for p in partitions], primary)
    nullable = null_supplying(join_plan)

    all_and = all(f.connective is Connective.AND for f in description.filters[1:])
    pushed: dict[str, list[FilterPredicate]] = {}
    residual: list[FilterPredicate] = []
    for f in description.filters:
        if all_and and f.table not in nullable:
            pushed.setdefault(f.table, []).append(f)
        else:
            residual.append(f)

    required: dict[str, dict[tuple[str, str], None]] = {a: {} for a in description.aliases}

    def need(table: str, column: str) -> None:
        if table in required:
            required[table].setdefault((table, column), None)

    for c in description.selected_columns:
        need(c.table, c.column)
    for g in description.group_by:
        need(g.table, g.column)
    for item in analyzed.values():
        for table, column in sorted(item.columns):
            need(table, column)
    for f in residual:
        need(f.table, f.column)
    for step in join_plan.steps:
        for placed_alias, placed_col, new_alias, new_col in step.pairs:
            need(placed_alias, placed_col)
            need(new_alias, new_col)

    for p in partitions:
        for alias in p.aliases:
            p.columns.extend(required[alias])
            p.filters.extend(pushed.get(alias, []))
    return FederatedPlan(partitions=partitions, join_plan=join_plan, residual_filters=residual)
