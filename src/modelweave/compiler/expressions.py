"""Aggregate expression analysis using sqlglot.

Aggregate expressions arrive as free-form SQL text. They are parsed once,
checked against an allow-list of functions and constructs, and kept as
sqlglot trees so compilation and in-memory evaluation work from the same
structure the author wrote.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import networkx as nx
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

AGGREGATE_FUNCTIONS: tuple[type[exp.Expression], ...] = (
    exp.Sum,
    exp.Avg,
    exp.Count,
    exp.Min,
    exp.Max,
)

# Scalar constructs accepted around and inside aggregates.
_ALLOWED_NODES: tuple[type[exp.Expression], ...] = (
    exp.Column,
    exp.Identifier,
    exp.Literal,
    exp.Null,
    exp.Boolean,
    exp.Paren,
    exp.Add,
    exp.Sub,
    exp.Mul,
    exp.Div,
    exp.Mod,
    exp.Neg,
    exp.Coalesce,
    exp.Nullif,
    exp.Round,
    exp.Abs,
    exp.Case,
    exp.If,
    exp.Cast,
    exp.DataType,
    exp.DataTypeParam,
    exp.EQ,
    exp.NEQ,
    exp.GT,
    exp.GTE,
    exp.LT,
    exp.LTE,
    exp.And,
    exp.Or,
    exp.Not,
    exp.Is,
    exp.Distinct,
    exp.Star,
)

_BRACKETS = re.compile(r"\[\[|\]\]|\[|\]")


class ExpressionError(ValueError):
    """Aggregate expression text is not acceptable."""


def has_brackets(text: str) -> bool:
    return bool(_BRACKETS.search(text))


def strip_brackets(text: str) -> str:
    """Remove ``[[ ]]`` / ``[ ]`` wrappers added by assistive tooling."""
    return _BRACKETS.sub("", text)


def parse_expression(text: str) -> exp.Expression:
    try:
        tree = sqlglot.parse_one(text)
    except SqlglotError as exc:
        raise ExpressionError(f"cannot parse '{text}': {exc}") from None
    if tree is None:
        raise ExpressionError(f"cannot parse '{text}'")
    if isinstance(tree, exp.Alias):
        raise ExpressionError(f"'{text}' must not carry its own alias")
    return tree


def _in_aggregate(node: exp.Expression) -> bool:
    parent = node.parent
    while parent is not None:
        if isinstance(parent, AGGREGATE_FUNCTIONS):
            return True
        parent = parent.parent
    return False


@dataclass
class AnalyzedAggregate:
    """A parsed aggregate expression with its column and alias dependencies."""

    alias: str
    text: str
    tree: exp.Expression
    columns: set[tuple[str, str]] = field(default_factory=set)
    alias_refs: set[str] = field(default_factory=set)
    problems: list[str] = field(default_factory=list)

    @property
    def simple_function(self) -> exp.Expression | None:
        """The aggregate node when the whole expression is one aggregate call."""
        tree = self.tree
        while isinstance(tree, exp.Paren):
            tree = tree.this
        return tree if isinstance(tree, AGGREGATE_FUNCTIONS) else None


def analyze(alias: str, text: str, known_aliases: set[str]) -> AnalyzedAggregate:
    """Parse and check one aggregate expression.

    Problems are collected rather than raised so a validator can report all
    of them at once; a parse failure raises :class:`ExpressionError`.
    """
    tree = parse_expression(text)
    result = AnalyzedAggregate(alias=alias, text=text, tree=tree)
    aggregate_count = 0

    for node in tree.walk():
        if isinstance(node, AGGREGATE_FUNCTIONS):
            aggregate_count += 1
            if _in_aggregate(node):
                result.problems.append(f"nested aggregate '{node.sql()}' is not supported")
            continue
        if isinstance(node, exp.Star):
            if not isinstance(node.parent, exp.Count):
                result.problems.append("'*' is only allowed as COUNT(*)")
            continue
        if isinstance(node, exp.Column):
            table, name = node.table, node.name
            if isinstance(node.this, exp.Star):
                result.problems.append("'<table>.*' is not supported in aggregates")
            elif table:
                result.columns.add((table, name))
                if not _in_aggregate(node):
                    result.problems.append(
                        f"column '{table}.{name}' is used outside an aggregate function"
                    )
            elif name in known_aliases:
                if name == alias:
                    result.problems.append(f"aggregate '{alias}' references itself")
                result.alias_refs.add(name)
            else:
                result.problems.append(
                    f"'{name}' is neither a '<table>.<column>' reference nor a known aggregate alias"
                )
            continue
        if isinstance(node, exp.AggFunc):
            result.problems.append(f"aggregate function '{node.sql()}' is not supported")
        elif isinstance(node, (exp.Select, exp.Subquery, exp.Window)):
            result.problems.append("subqueries and window functions are not supported")
        elif isinstance(node, exp.Anonymous):
            result.problems.append(f"function '{node.name}' is not supported")
        elif not isinstance(node, _ALLOWED_NODES):
            result.problems.append(f"construct '{node.sql()}' is not supported")

    if aggregate_count == 0 and not result.alias_refs:
        result.problems.append("expression contains no aggregate function")
    return result


def dependency_order(analyzed: dict[str, AnalyzedAggregate]) -> list[str]:
    """Aliases in evaluation order (dependencies first).

    Raises :class:`ExpressionError` naming the cycle when aliases refer to
    each other circularly.
    """
    graph: nx.DiGraph[str] = nx.DiGraph()
    for alias, item in analyzed.items():
        graph.add_node(alias)
        for ref in item.alias_refs:
            if ref != alias:
                graph.add_edge(ref, alias)
    try:
        return list(nx.lexicographical_topological_sort(graph))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph)
        path = [u for u, _ in cycle] + [cycle[0][0]]
        raise ExpressionError(f"circular aggregate references: {' -> '.join(path)}") from None


def inline_aliases(analyzed: dict[str, AnalyzedAggregate]) -> dict[str, exp.Expression]:
    """Replace alias references by the (parenthesised) expressions they name."""
    resolved: dict[str, exp.Expression] = {}
    for alias in dependency_order(analyzed):
        item = analyzed[alias]

        def _swap(node: exp.Expression) -> exp.Expression:
            if isinstance(node, exp.Column) and not node.table and node.name in resolved:
                return exp.Paren(this=resolved[node.name].copy())
            return node

        resolved[alias] = item.tree.copy().transform(_swap)
    return resolved


def render(tree: exp.Expression, dialect: str) -> str:
    """Render a tree for a sqlglot dialect with quoted identifiers."""
    return tree.sql(dialect=dialect, identify=True)
