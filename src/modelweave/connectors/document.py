"""In-process document store executing the aggregation-pipeline subset the compiler emits."""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from collections.abc import Mapping
from typing import Any

from modelweave.connectors.base import SourceConnector
from modelweave.errors import ConnectorError, ConnectorReason
from modelweave.models.result import CompiledQuery, infer_type
from modelweave.models.source import (
    ColumnDescriptor,
    RowSet,
    SourceKind,
    TableDescriptor,
)

logger = logging.getLogger("modelweave.connectors")

_MISSING = object()


class PipelineError(ValueError):
    """The pipeline uses a stage or operator this store does not implement."""


def _lookup(doc: Mapping[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _value(doc: Mapping[str, Any], expr: Any) -> Any:
    """Evaluate an aggregation expression (field path, operator object or literal)."""
    if isinstance(expr, str) and expr.startswith("$"):
        found = _lookup(doc, expr[1:])
        return None if found is _MISSING else found
    if isinstance(expr, dict) and len(expr) == 1:
        (op, arg), = expr.items()
        match op:
            case "$cond":
                test, then, otherwise = arg
                return _value(doc, then) if _value(doc, test) else _value(doc, otherwise)
            case "$eq":
                return _value(doc, arg[0]) == _value(doc, arg[1])
            case "$ne":
                return _value(doc, arg[0]) != _value(doc, arg[1])
            case "$size":
                found = _value(doc, arg)
                return len(found) if found is not None else 0
    if isinstance(expr, dict):
        return {k: _value(doc, v) for k, v in expr.items()}
    return expr


def _compare(op: str, actual: Any, expected: Any) -> bool:
    match op:
        case "$eq":
            return actual == expected
        case "$ne":
            return actual != expected
        case "$in":
            return actual in expected
        case "$nin":
            return actual not in expected
    if actual is None or expected is None:
        return False
    try:
        match op:
            case "$gt":
                return actual > expected
            case "$gte":
                return actual >= expected
            case "$lt":
                return actual < expected
            case "$lte":
                return actual <= expected
    except TypeError:
        return False
    raise PipelineError(f"unsupported query operator '{op}'")


def _field_matches(actual: Any, criteria: Any) -> bool:
    if not isinstance(criteria, dict) or not any(k.startswith("$") for k in criteria):
        return actual == criteria
    for op, expected in criteria.items():
        if op == "$options":
            continue
        if op == "$regex":
            flags = re.IGNORECASE if "i" in criteria.get("$options", "") else 0
            if not isinstance(actual, str) or re.search(expected, actual, flags) is None:
                return False
        elif op == "$not":
            if _field_matches(actual, expected):
                return False
        elif not _compare(op, actual, expected):
            return False
    return True


def matches(doc: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Evaluate a ``$match`` query document against ``doc``."""
    for key, criteria in query.items():
        if key == "$and":
            if not all(matches(doc, q) for q in criteria):
                return False
        elif key == "$or":
            if not any(matches(doc, q) for q in criteria):
                return False
        else:
            found = _lookup(doc, key)
            if not _field_matches(None if found is _MISSING else found, criteria):
                return False
    return True


def _group(docs: list[dict[str, Any]], stage: Mapping[str, Any]) -> list[dict[str, Any]]:
    key_expr = stage["_id"]
    buckets: dict[Any, list[dict[str, Any]]] = {}
    keys: dict[Any, Any] = {}
    for doc in docs:
        key = _value(doc, key_expr) if key_expr is not None else None
        hashable = tuple(sorted(key.items())) if isinstance(key, dict) else key
        buckets.setdefault(hashable, []).append(doc)
        keys.setdefault(hashable, key)
    if key_expr is None and not buckets:
        buckets[None] = []
        keys[None] = None

    out: list[dict[str, Any]] = []
    for hashable, members in buckets.items():
        result: dict[str, Any] = {"_id": keys[hashable]}
        for field, acc in stage.items():
            if field == "_id":
                continue
            (op, arg), = acc.items()
            values = [_value(d, arg) for d in members]
            present = [v for v in values if v is not None]
            match op:
                case "$sum":
                    result[field] = sum(v for v in present if isinstance(v, (int, float)))
                case "$avg":
                    result[field] = sum(present) / len(present) if present else None
                case "$min":
                    result[field] = min(present) if present else None
                case "$max":
                    result[field] = max(present) if present else None
                case "$addToSet":
                    seen: list[Any] = []
                    for v in present:
                        if v not in seen:
                            seen.append(v)
                    result[field] = seen
                case _:
                    raise PipelineError(f"unsupported accumulator '{op}'")
        out.append(result)
    return out


def _project(doc: dict[str, Any], stage: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for field, rule in stage.items():
        if field == "_id" and rule == 0:
            continue
        if rule == 1 or rule is True:
            found = _lookup(doc, field)
            if found is not _MISSING:
                out[field] = found
        elif rule != 0:
            out[field] = _value(doc, rule)
    return out


def run_pipeline(docs: list[dict[str, Any]], stages: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Apply ``$match``/``$group``/``$project``/``$sort``/``$skip``/``$limit`` stages."""
    current = [copy.deepcopy(d) for d in docs]
    for stage in stages:
        (name, body), = stage.items()
        match name:
            case "$match":
                current = [d for d in current if matches(d, body)]
            case "$group":
                current = _group(current, body)
            case "$project":
                current = [_project(d, body) for d in current]
            case "$sort":
                for field, direction in reversed(list(body.items())):
                    present = [d for d in current if d.get(field) is not None]
                    absent = [d for d in current if d.get(field) is None]
                    present.sort(key=lambda d, f=field: d[f], reverse=direction < 0)
                    current = present + absent
            case "$skip":
                current = current[body:]
            case "$limit":
                current = current[:body]
            case _:
                raise PipelineError(f"unsupported pipeline stage '{name}'")
    return current


class InMemoryDocumentConnector(SourceConnector):
    """Collections of dicts queried through aggregation pipelines."""

    def __init__(self, source_id: str, collections: Mapping[str, list[dict[str, Any]]]) -> None:
        self.source_id = source_id
        self._collections = {name: list(docs) for name, docs in collections.items()}

    @property
    def kind(self) -> SourceKind:
        return SourceKind.DOCUMENT

    @property
    def dialect(self) -> str:
        return "document"

    async def list_tables(self) -> list[TableDescriptor]:
        return [TableDescriptor(name=name) for name in sorted(self._collections)]

    async def list_columns(self, table: str) -> list[ColumnDescriptor]:
        docs = self._collection(table)
        names = list(dict.fromkeys(k for d in docs for k in d))
        return [ColumnDescriptor(name=n, type=infer_type([d.get(n) for d in docs])) for n in names]

    async def execute_query(self, compiled: CompiledQuery) -> RowSet:
        statement = compiled.statement
        if not isinstance(statement, dict) or "collection" not in statement:
            raise ConnectorError(
                self.source_id, ConnectorReason.QUERY_FAILED, "expected an aggregation pipeline"
            )
        docs = self._collection(statement["collection"])
        logger.debug("Source '%s' running pipeline %s", self.source_id, statement)
        try:
            result = await asyncio.to_thread(run_pipeline, docs, statement.get("pipeline", []))
        except PipelineError as exc:
            raise ConnectorError(self.source_id, ConnectorReason.QUERY_FAILED, str(exc)) from exc
        columns = list(dict.fromkeys(k for d in result for k in d)) or compiled.output_names
        return RowSet(columns=columns, rows=[tuple(d.get(c) for c in columns) for d in result])

    def _collection(self, name: str) -> list[dict[str, Any]]:
        if name not in self._collections:
            raise ConnectorError(
                self.source_id, ConnectorReason.TABLE_NOT_FOUND, f"no collection '{name}'"
            )
        return self._collections[name]
