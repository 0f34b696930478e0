"""Join graph: table aliases as nodes, join conditions as edges. Uses networkx for connectivity."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import networkx as nx

from modelweave.models.description import JoinCondition, JoinKind, QueryDescription

_FLIPPED: dict[JoinKind, JoinKind] = {
    JoinKind.INNER: JoinKind.INNER,
    JoinKind.LEFT: JoinKind.RIGHT,
    JoinKind.RIGHT: JoinKind.LEFT,
    JoinKind.FULL: JoinKind.FULL,
}


def flip(kind: JoinKind) -> JoinKind:
    return _FLIPPED[kind]


@dataclass
class JoinStep:
    """One step of a join plan: attach ``nodes`` to everything placed before.

    ``kind`` is oriented so the already-placed side is the left input.
    ``pairs`` lists ``(placed alias, placed column, new alias, new column)``
    equality pairs; it is empty for a cross join.
    """

    nodes: list[str]
    kind: JoinKind | None
    pairs: list[tuple[str, str, str, str]] = field(default_factory=list)
    conditions: list[JoinCondition] = field(default_factory=list)

    @property
    def is_cross(self) -> bool:
        return self.kind is None


@dataclass
class JoinPlan:
    root: list[str]
    steps: list[JoinStep] = field(default_factory=list)

    @property
    def has_cross_join(self) -> bool:
        return any(s.is_cross for s in self.steps)


class JoinGraph:
    """Undirected multigraph over the table aliases of one description."""

    def __init__(self, description: QueryDescription) -> None:
        self._description = description
        self._graph: nx.MultiGraph[str] = nx.MultiGraph()
        known = set(description.aliases)
        for alias in description.aliases:
            self._graph.add_node(alias)
        for join in description.joins:
            if join.left_table in known and join.right_table in known:
                self._graph.add_edge(join.left_table, join.right_table, join=join)

    @property
    def graph(self) -> nx.MultiGraph[str]:
        return self._graph

    def components(self) -> list[list[str]]:
        """Connected components, each in table-list order, ordered by first member."""
        order = {a: i for i, a in enumerate(self._description.aliases)}
        comps = [sorted(c, key=order.__getitem__) for c in nx.connected_components(self._graph)]
        return sorted(comps, key=lambda c: order[c[0]])

    def reachable_from(self, alias: str) -> set[str]:
        if alias not in self._graph:
            return set()
        return set(nx.node_connected_component(self._graph, alias))

    def orphans(self) -> list[str]:
        """Tables that no join path links to the primary table."""
        reachable = self.reachable_from(self._description.primary)
        return [a for a in self._description.aliases if a not in reachable]

    def conditions_between(self, left: Iterable[str], right: Iterable[str]) -> list[JoinCondition]:
        """Join conditions with one end in ``left`` and the other in ``right``, in declaration order."""
        lset, rset = set(left), set(right)
        return [
            j
            for j in self._description.joins
            if (j.left_table in lset and j.right_table in rset)
            or (j.right_table in lset and j.left_table in rset)
        ]


def plan_joins(
    description: QueryDescription,
    groups: list[list[str]],
    first: int = 0,
) -> JoinPlan:
    """Deterministic join order over groups of aliases.

    Starting from ``groups[first]``, repeatedly attach the first remaining
    group (in the given order) that has a join condition with the placed
    set. If none does, the first remaining group is cross joined. A single
    table is a group of one; federated partitions are larger groups.
    """
    graph = JoinGraph(description)
    placed = list(groups[first])
    remaining = [g for i, g in enumerate(groups) if i != first]
    plan = JoinPlan(root=list(groups[first]))

    while remaining:
        chosen: list[str] | None = None
        conditions: list[JoinCondition] = []
        for group in remaining:
            conditions = graph.conditions_between(placed, group)
            if conditions:
                chosen = group
                break
        if chosen is None:
            chosen = remaining[0]
            plan.steps.append(JoinStep(nodes=list(chosen), kind=None))
        else:
            plan.steps.append(_step(chosen, conditions))
        placed.extend(chosen)
        remaining.remove(chosen)
    return plan


def _step(nodes: list[str], conditions: list[JoinCondition]) -> JoinStep:
    new = set(nodes)
    pairs: list[tuple[str, str, str, str]] = []
    for c in conditions:
        if c.right_table in new:
            pairs.append((c.left_table, c.left_column, c.right_table, c.right_column))
        else:
            pairs.append((c.right_table, c.right_column, c.left_table, c.left_column))
    lead = conditions[0]
    kind = lead.join_type if lead.right_table in new else flip(lead.join_type)
    return JoinStep(nodes=list(nodes), kind=kind, pairs=pairs, conditions=list(conditions))


def table_plan(description: QueryDescription) -> JoinPlan:
    """Join plan for single tables, starting at the primary table."""
    aliases = description.aliases
    return plan_joins(description, [[a] for a in aliases], aliases.index(description.primary))


def null_supplying(plan: JoinPlan) -> set[str]:
    """Aliases whose columns may be null-extended by an outer join in ``plan``."""
    placed = set(plan.root)
    nullable: set[str] = set()
    for step in plan.steps:
        if step.kind in (JoinKind.RIGHT, JoinKind.FULL):
            nullable |= placed
        if step.kind in (JoinKind.LEFT, JoinKind.FULL):
            nullable |= set(step.nodes)
        placed |= set(step.nodes)
    return nullable

