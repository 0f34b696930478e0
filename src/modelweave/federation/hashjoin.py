"""In-memory hash join over decoded rows, with join-key normalization across sources."""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from modelweave.errors import ExecutionError, ExecutionTimeout
from modelweave.federation.evaluator import as_number
from modelweave.models.description import JoinKind

Row = dict[str, Any]

CHECK_EVERY = 1024


def normalize_key(value: Any) -> Any:
    """Canonical form of a join key so equal values from different sources hash equally.

    Numeric text becomes a number, integral floats and Decimals become int,
    other Decimals become float (precision beyond a double is lost), text is
    stripped and temporal values become ISO strings.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        value = value.strip()
        value = as_number(value)
    if isinstance(value, Decimal):
        value = int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    return value


def key_kind(value: Any) -> str:
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "text"
    return type(value).__name__


class Deadline:
    """Cooperative deadline checked from inside the join loops."""

    def __init__(self, at: float | None) -> None:
        self.at = at
        self._ticks = 0

    def tick(self) -> None:
        self._ticks += 1
        if self.at is not None and self._ticks % CHECK_EVERY == 0 and time.monotonic() > self.at:
            raise ExecutionTimeout("in-memory join exceeded its deadline")


def _keys(rows: Sequence[Row], names: Sequence[str], deadline: Deadline) -> list[tuple[Any, ...] | None]:
    out: list[tuple[Any, ...] | None] = []
    for row in rows:
        deadline.tick()
        key = tuple(normalize_key(row.get(n)) for n in names)
        out.append(None if any(k is None for k in key) else key)
    return out


def _check_kinds(
    left: list[tuple[Any, ...] | None],
    right: list[tuple[Any, ...] | None],
    pairs: Sequence[tuple[str, str]],
) -> None:
    for i, (lname, rname) in enumerate(pairs):
        lkinds = {key_kind(k[i]) for k in left if k is not None}
        rkinds = {key_kind(k[i]) for k in right if k is not None}
        if lkinds and rkinds and not (lkinds & rkinds):
            raise ExecutionError(
                f"Join key '{lname}' = '{rname}' compares incompatible types "
                f"({', '.join(sorted(lkinds))} vs {', '.join(sorted(rkinds))})"
            )


def hash_join(
    left: Sequence[Row],
    right: Sequence[Row],
    pairs: Sequence[tuple[str, str]],
    kind: JoinKind,
    left_columns: Sequence[str],
    right_columns: Sequence[str],
    deadline: Deadline | None = None,
) -> list[Row]:
    """Equi-join ``left`` and ``right`` on ``(left name, right name)`` pairs.

    The hash table is built on the smaller input and probed with the larger.
    Rows without a partner on an outer side get ``None`` for every column of
    the other side. NULL keys never match.
    """
    deadline = deadline or Deadline(None)
    left_names = [p[0] for p in pairs]
    right_names = [p[1] for p in pairs]
    left_keys = _keys(left, left_names, deadline)
    right_keys = _keys(right, right_names, deadline)
    _check_kinds(left_keys, right_keys, pairs)

    left_null: Row = dict.fromkeys(left_columns)
    right_null: Row = dict.fromkeys(right_columns)
    keep_left = kind in (JoinKind.LEFT, JoinKind.FULL)
    keep_right = kind in (JoinKind.RIGHT, JoinKind.FULL)
    out: list[Row] = []

    build_right = len(right) <= len(left)
    build_rows, build_keys = (right, right_keys) if build_right else (left, left_keys)
    probe_rows, probe_keys = (left, left_keys) if build_right else (right, right_keys)
    keep_probe, keep_build = (keep_left, keep_right) if build_right else (keep_right, keep_left)

    index: dict[tuple[Any, ...], list[int]] = {}
    for i, key in enumerate(build_keys):
        deadline.tick()
        if key is not None:
            index.setdefault(key, []).append(i)

    def merged(probe_row: Row | None, build_row: Row | None) -> Row:
        if build_right:
            lrow, rrow = probe_row, build_row
        else:
            lrow, rrow = build_row, probe_row
        return {**(lrow if lrow is not None else left_null), **(rrow if rrow is not None else right_null)}

    matched: set[int] = set()
    for row, key in zip(probe_rows, probe_keys, strict=True):
        deadline.tick()
        hits = index.get(key, ()) if key is not None else ()
        for i in hits:
            out.append(merged(row, build_rows[i]))
            matched.add(i)
        if not hits and keep_probe:
            out.append(merged(row, None))

    if keep_build:
        for i, row in enumerate(build_rows):
            deadline.tick()
            if i not in matched:
                out.append(merged(None, row))
    return out


def cross_join(left: Sequence[Row], right: Sequence[Row], deadline: Deadline | None = None) -> list[Row]:
    deadline = deadline or Deadline(None)
    out: list[Row] = []
    for lrow in left:
        for rrow in right:
            deadline.tick()
            out.append({**lrow, **rrow})
    return out
