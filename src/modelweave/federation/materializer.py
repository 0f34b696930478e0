"""Result materialization after the in-memory join: filter, group, aggregate, order, page."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from modelweave.compiler.expressions import AnalyzedAggregate, dependency_order
from modelweave.federation.evaluator import GroupScope, compare, evaluate, fold
from modelweave.federation.hashjoin import Deadline
from modelweave.models.description import FilterPredicate, QueryDescription, SortDirection

Row = dict[str, Any]


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, str(value))


def group_key(value: Any) -> Any:
    """Grouping key for a raw value; unlike join keys, no normalization is applied."""
    try:
        hash(value)
    except TypeError:
        return (type(value).__name__, repr(value))
    if isinstance(value, bool):
        return ("bool", value)
    return value


def sort_rows(rows: list[Row], keys: Sequence[tuple[str, bool]]) -> list[Row]:
    """Stable multi-key sort; nulls sort last for either direction."""
    current = list(rows)
    for name, desc in reversed(keys):
        present = [r for r in current if r.get(name) is not None]
        absent = [r for r in current if r.get(name) is None]
        present.sort(key=lambda r, n=name: _sort_key(r[n]), reverse=desc)
        current = present + absent
    return current


class ResultMaterializer:
    """Applies the post-join part of a description to joined rows.

    Rows are keyed by ``<table>_<column>``; the output rows carry exactly
    the description's output names in declaration order.
    """

    def __init__(
        self,
        description: QueryDescription,
        analyzed: dict[str, AnalyzedAggregate],
        residual_filters: Sequence[FilterPredicate] = (),
    ) -> None:
        self._description = description
        self._analyzed = analyzed
        self._order = dependency_order(analyzed) if analyzed else []
        self._filters = list(residual_filters)

    def materialize(self, rows: list[Row], deadline: Deadline | None = None) -> list[Row]:
        deadline = deadline or Deadline(None)
        d = self._description
        if self._filters:
            rows = [r for r in rows if self._keep(r, deadline)]

        if d.has_aggregates or d.group_by:
            result = self._aggregate(rows, deadline)
            if d.having:
                result = [
                    r
                    for r in result
                    if fold([(h.connective, compare(h.operator, r.get(h.target), h.value)) for h in d.having])
                ]
        else:
            result = rows

        if d.order_by:
            result = sort_rows(
                result, [(o.target, o.direction is SortDirection.DESC) for o in d.order_by]
            )
        if d.offset:
            result = result[d.offset :]
        if d.limit is not None:
            result = result[: d.limit]

        names = d.output_names()
        return [{n: r.get(n) for n in names} for r in result]

    def _keep(self, row: Row, deadline: Deadline) -> bool:
        deadline.tick()
        return fold(
            [(f.connective, compare(f.operator, row.get(f.ref.output_name), f.value)) for f in self._filters]
        )

    def _aggregate(self, rows: list[Row], deadline: Deadline) -> list[Row]:
        group_names = [g.output_name for g in self._description.group_by]
        groups: dict[tuple[Any, ...], list[Row]] = {}
        for row in rows:
            deadline.tick()
            key = tuple(group_key(row.get(n)) for n in group_names)
            groups.setdefault(key, []).append(row)
        if not group_names and not groups:
            groups[()] = []

        out: list[Row] = []
        for members in groups.values():
            deadline.tick()
            first = members[0] if members else {}
            result: Row = {n: first.get(n) for n in group_names}
            for c in self._description.selected_columns:
                result.setdefault(c.output_name, first.get(c.output_name))
            computed: dict[str, Any] = {}
            for alias in self._order:
                computed[alias] = evaluate(self._analyzed[alias].tree, GroupScope(members, computed))
            result.update(computed)
            out.append(result)
        return out
