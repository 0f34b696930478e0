"""Description validation: group-by completeness, aggregate expressions, aliases, join graph."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Literal

from modelweave.compiler.expressions import (
    AnalyzedAggregate,
    ExpressionError,
    analyze,
    dependency_order,
    has_brackets,
    strip_brackets,
)
from modelweave.compiler.graph import JoinGraph
from modelweave.models.description import (
    FilterOperator,
    QueryDescription,
    is_identifier,
    output_name,
)
from modelweave.models.errors import ValidationResult, Violation, ViolationKind

logger = logging.getLogger("modelweave.validation")

CleanupMode = Literal["rewrite", "reject"]

_VALUELESS = {FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL}
_LIST_VALUED = {FilterOperator.IN, FilterOperator.NOT_IN}


class DescriptionValidator:
    """Checks a query description for internal consistency.

    Stateless and free of I/O: the same description always yields the same
    result. Errors block compilation; warnings are passed on to the caller.
    """

    def __init__(self, expression_cleanup: CleanupMode = "rewrite") -> None:
        self._cleanup = expression_cleanup

    def validate(self, description: QueryDescription) -> ValidationResult:
        errors: list[Violation] = []
        warnings: list[Violation] = []
        rewrites: dict[str, str] = {}

        errors.extend(self._check_table_aliases(description))
        errors.extend(self._check_references(description))
        errors.extend(self._check_joins(description))
        errors.extend(self._check_filters(description))

        analyzed, agg_errors, agg_warnings, rewrites = self._check_aggregates(description)
        errors.extend(agg_errors)
        warnings.extend(agg_warnings)

        errors.extend(self._check_output_names(description))
        errors.extend(self._check_decoded_names(description, analyzed))
        errors.extend(self._check_group_by(description))
        errors.extend(self._check_having_and_order(description, set(analyzed)))
        warnings.extend(self._check_join_graph(description))

        return ValidationResult(
            valid=not errors, errors=errors, warnings=warnings, rewrites=rewrites
        )

    # -- aliases & references --------------------------------------------------

    def _check_table_aliases(self, description: QueryDescription) -> list[Violation]:
        errors: list[Violation] = []
        counts = Counter(description.aliases)
        for i, table in enumerate(description.tables):
            if not is_identifier(table.alias):
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Table alias '{table.alias}' is not a valid identifier",
                        path=f"tables[{i}].alias",
                    )
                )
        for alias, n in counts.items():
            if n > 1:
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Table alias '{alias}' is declared {n} times",
                        path="tables",
                    )
                )
        if description.primary not in counts:
            errors.append(
                Violation(
                    kind=ViolationKind.UNKNOWN_REFERENCE,
                    message=f"Primary table '{description.primary}' is not declared",
                    path="primary_table",
                    suggestions=list(counts),
                )
            )
        return errors

    def _check_references(self, description: QueryDescription) -> list[Violation]:
        known = set(description.aliases)
        errors: list[Violation] = []

        def _unknown(alias: str, path: str) -> None:
            errors.append(
                Violation(
                    kind=ViolationKind.UNKNOWN_REFERENCE,
                    message=f"Table alias '{alias}' is not declared in tables",
                    path=path,
                    suggestions=sorted(known),
                )
            )

        for i, c in enumerate(description.columns):
            if c.table not in known:
                _unknown(c.table, f"columns[{i}].table")
        for i, j in enumerate(description.joins):
            for side in (j.left_table, j.right_table):
                if side not in known:
                    _unknown(side, f"joins[{i}]")
        for i, f in enumerate(description.filters):
            if f.table not in known:
                _unknown(f.table, f"filters[{i}].table")
        for i, g in enumerate(description.group_by):
            if g.table not in known:
                _unknown(g.table, f"group_by[{i}].table")
        for i, a in enumerate(description.aggregate_functions):
            if a.table not in known:
                _unknown(a.table, f"aggregate_functions[{i}].table")
        return errors

    def _check_joins(self, description: QueryDescription) -> list[Violation]:
        errors: list[Violation] = []
        kinds: dict[frozenset[str], set[str]] = {}
        for i, j in enumerate(description.joins):
            if j.left_table == j.right_table:
                errors.append(
                    Violation(
                        kind=ViolationKind.INVALID_JOIN,
                        message=f"Join '{j}' joins table '{j.left_table}' to itself; "
                        "declare a second alias for self joins",
                        path=f"joins[{i}]",
                    )
                )
                continue
            pair = frozenset((j.left_table, j.right_table))
            oriented = j.join_type.value if j.left_table < j.right_table else _mirror(j.join_type.value)
            kinds.setdefault(pair, set()).add(oriented)
        for pair, seen in kinds.items():
            if len(seen) > 1:
                left, right = sorted(pair)
                errors.append(
                    Violation(
                        kind=ViolationKind.INVALID_JOIN,
                        message=f"Conditions between '{left}' and '{right}' disagree on the join kind "
                        f"({', '.join(sorted(seen))})",
                        path="joins",
                    )
                )
        return errors

    def _check_filters(self, description: QueryDescription) -> list[Violation]:
        errors: list[Violation] = []
        for i, f in enumerate(description.filters):
            message = _filter_shape_problem(f.operator, f.value)
            if message:
                errors.append(
                    Violation(kind=ViolationKind.INVALID_FILTER, message=message, path=f"filters[{i}]")
                )
        for i, h in enumerate(description.having):
            message = _filter_shape_problem(h.operator, h.value)
            if message:
                errors.append(
                    Violation(kind=ViolationKind.INVALID_FILTER, message=message, path=f"having[{i}]")
                )
        return errors

    # -- aggregates --------------------------------------------------------------

    def _check_aggregates(
        self, description: QueryDescription
    ) -> tuple[dict[str, AnalyzedAggregate], list[Violation], list[Violation], dict[str, str]]:
        errors: list[Violation] = []
        warnings: list[Violation] = []
        rewrites: dict[str, str] = {}
        analyzed: dict[str, AnalyzedAggregate] = {}
        known_tables = set(description.aliases)
        aggregates = description.all_aggregates
        aliases = {a.alias for a in aggregates}

        for i, agg in enumerate(aggregates):
            path = f"aggregates[{i}]"
            if not is_identifier(agg.alias):
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Aggregate alias '{agg.alias}' is not a valid identifier",
                        path=f"{path}.alias",
                    )
                )
            text = agg.expression
            if has_brackets(text):
                cleaned = strip_brackets(text)
                if self._cleanup == "reject":
                    errors.append(
                        Violation(
                            kind=ViolationKind.UNSUPPORTED_AGGREGATE,
                            message=f"Aggregate '{agg.alias}' uses bracket notation: {text}",
                            path=path,
                            suggestions=[cleaned],
                        )
                    )
                    continue
                logger.warning(
                    "Rewrote aggregate '%s' bracket notation: %r -> %r", agg.alias, text, cleaned
                )
                warnings.append(
                    Violation(
                        kind=ViolationKind.EXPRESSION_REWRITTEN,
                        message=f"Aggregate '{agg.alias}' was rewritten from '{text}' to '{cleaned}'",
                        path=path,
                    )
                )
                rewrites[agg.alias] = cleaned
                text = cleaned
            try:
                item = analyze(agg.alias, text, aliases)
            except ExpressionError as exc:
                errors.append(
                    Violation(kind=ViolationKind.UNSUPPORTED_AGGREGATE, message=str(exc), path=path)
                )
                continue
            for table, column in sorted(item.columns):
                if table not in known_tables:
                    item.problems.append(f"table '{table}' of '{table}.{column}' is not declared")
            for problem in item.problems:
                errors.append(
                    Violation(
                        kind=ViolationKind.UNSUPPORTED_AGGREGATE,
                        message=f"Aggregate '{agg.alias}': {problem}",
                        path=path,
                    )
                )
            analyzed[agg.alias] = item

        try:
            dependency_order(analyzed)
        except ExpressionError as exc:
            errors.append(
                Violation(kind=ViolationKind.UNSUPPORTED_AGGREGATE, message=str(exc), path="aggregates")
            )
        return analyzed, errors, warnings, rewrites

    # -- output shape --------------------------------------------------------------

    def _check_output_names(self, description: QueryDescription) -> list[Violation]:
        errors: list[Violation] = []
        counts = Counter(description.output_names())
        for name, n in counts.items():
            if n > 1:
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Output name '{name}' is produced {n} times",
                        path="columns",
                    )
                )
        return errors

    def _check_decoded_names(
        self, description: QueryDescription, analyzed: dict[str, AnalyzedAggregate]
    ) -> list[Violation]:
        """Every referenced column decodes to ``<alias>_<column>``; distinct columns need distinct keys."""
        refs: dict[str, set[tuple[str, str]]] = {}

        def add(table: str, column: str) -> None:
            refs.setdefault(output_name(table, column), set()).add((table, column))

        for c in description.columns:
            add(c.table, c.column)
        for g in description.group_by:
            add(g.table, g.column)
        for f in description.filters:
            add(f.table, f.column)
        for j in description.joins:
            add(j.left_table, j.left_column)
            add(j.right_table, j.right_column)
        for item in analyzed.values():
            for table, column in item.columns:
                add(table, column)

        errors: list[Violation] = []
        for name, pairs in sorted(refs.items()):
            if len(pairs) > 1:
                listed = ", ".join(f"{t}.{c}" for t, c in sorted(pairs))
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Columns {listed} all map to the row key {name}",
                        path="tables",
                        suggestions=["rename one of the table aliases"],
                    )
                )
        selected = {c.output_name for c in description.selected_columns}
        for i, agg in enumerate(description.all_aggregates):
            if agg.alias in refs and agg.alias not in selected:
                errors.append(
                    Violation(
                        kind=ViolationKind.AMBIGUOUS_ALIAS,
                        message=f"Aggregate alias {agg.alias} collides with the row key of a referenced column",
                        path=f"aggregates[{i}].alias",
                    )
                )
        return errors

    def _check_group_by(self, description: QueryDescription) -> list[Violation]:
        if not description.has_aggregates:
            return []
        grouped = {g.output_name for g in description.group_by}
        errors: list[Violation] = []
        for i, c in enumerate(description.columns):
            if c.selected and c.output_name not in grouped:
                errors.append(
                    Violation(
                        kind=ViolationKind.MISSING_GROUP_BY,
                        message=f"Column '{c}' is selected alongside aggregates but not grouped",
                        path=f"columns[{i}]",
                        suggestions=[f"add {c} to group_by", f"mark {c} as not selected"],
                    )
                )
        return errors

    def _check_having_and_order(
        self, description: QueryDescription, aggregate_aliases: set[str]
    ) -> list[Violation]:
        errors: list[Violation] = []
        outputs = set(description.output_names())
        grouped = {g.output_name for g in description.group_by}
        groupable = outputs | grouped | aggregate_aliases

        for i, h in enumerate(description.having):
            if not description.has_aggregates:
                errors.append(
                    Violation(
                        kind=ViolationKind.MISSING_GROUP_BY,
                        message="HAVING requires at least one aggregate",
                        path=f"having[{i}]",
                    )
                )
            elif h.target not in groupable:
                errors.append(
                    Violation(
                        kind=ViolationKind.UNKNOWN_REFERENCE,
                        message=f"HAVING target '{h.target}' is not an aggregate alias or grouped column",
                        path=f"having[{i}].target",
                        suggestions=sorted(groupable),
                    )
                )

        for i, o in enumerate(description.order_by):
            if o.target in outputs:
                continue
            if description.has_aggregates and o.target in grouped:
                continue
            errors.append(
                Violation(
                    kind=ViolationKind.UNKNOWN_REFERENCE,
                    message=f"ORDER BY target '{o.target}' is not an output column",
                    path=f"order_by[{i}].target",
                    suggestions=sorted(outputs),
                )
            )
        return errors

    # -- join graph ------------------------------------------------------------------

    def _check_join_graph(self, description: QueryDescription) -> list[Violation]:
        if len(description.tables) < 2:
            return []
        graph = JoinGraph(description)
        warnings = [
            Violation(
                kind=ViolationKind.ORPHANED_TABLE,
                message=f"Table '{alias}' is not reachable from '{description.primary}' "
                "through any join and will be cross joined",
                path=f"tables[{description.aliases.index(alias)}]",
            )
            for alias in graph.orphans()
        ]
        components = graph.components()
        if len(components) > 1:
            listed = " | ".join(", ".join(c) for c in components)
            warnings.append(
                Violation(
                    kind=ViolationKind.DISCONNECTED_JOIN_GRAPH,
                    message=f"Join graph has {len(components)} disconnected components: {listed}",
                    path="joins",
                )
            )
        return warnings


def _mirror(kind: str) -> str:
    return {"left": "right", "right": "left"}.get(kind, kind)


def _filter_shape_problem(operator: FilterOperator, value: object) -> str | None:
    if operator in _LIST_VALUED:
        if not isinstance(value, list) or not value:
            return f"Operator '{operator.value}' needs a non-empty list value"
    elif operator is FilterOperator.BETWEEN:
        if not isinstance(value, list) or len(value) != 2:
            return "Operator 'between' needs a [low, high] pair"
    elif operator not in _VALUELESS:
        if value is None:
            return f"Operator '{operator.value}' needs a value; use is_null for null checks"
        if isinstance(value, (list, dict)):
            return f"Operator '{operator.value}' needs a scalar value"
    return None
