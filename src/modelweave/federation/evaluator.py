"""In-memory evaluation of predicates and sqlglot expression trees over joined rows."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from sqlglot import exp

from modelweave.compiler.document import like_to_regex
from modelweave.compiler.expressions import AGGREGATE_FUNCTIONS
from modelweave.errors import ExecutionError
from modelweave.models.description import Connective, FilterOperator, output_name

_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def as_number(value: Any) -> Any:
    """Numeric view of a value: Decimal -> float, numeric text -> int/float, else unchanged."""
    if isinstance(value, bool):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str) and _NUMERIC.match(value.strip()):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    return value


def _coerce_pair(a: Any, b: Any) -> tuple[Any, Any]:
    if isinstance(a, (int, float, Decimal)) or isinstance(b, (int, float, Decimal)):
        return as_number(a), as_number(b)
    return a, b


def compare(operator: FilterOperator, value: Any, target: Any) -> bool | None:
    """SQL-style predicate: ``None`` stands for UNKNOWN."""
    match operator:
        case FilterOperator.IS_NULL:
            return value is None
        case FilterOperator.IS_NOT_NULL:
            return value is not None
    if value is None:
        return None
    match operator:
        case FilterOperator.IN | FilterOperator.NOT_IN:
            found = any(a == b for a, b in (_coerce_pair(value, t) for t in target))
            return found if operator is FilterOperator.IN else not found
        case FilterOperator.BETWEEN:
            low, high = target
            return _order(value, low, ">=") and _order(value, high, "<=")
        case FilterOperator.LIKE | FilterOperator.NOT_LIKE:
            hit = re.match(like_to_regex(str(target)), str(value), re.IGNORECASE | re.DOTALL) is not None
            return hit if operator is FilterOperator.LIKE else not hit
        case FilterOperator.EQ:
            a, b = _coerce_pair(value, target)
            return a == b
        case FilterOperator.NEQ:
            a, b = _coerce_pair(value, target)
            return a != b
        case _:
            return _order(value, target, operator.value)


def _order(value: Any, target: Any, op: str) -> bool | None:
    if value is None or target is None:
        return None
    a, b = _coerce_pair(value, target)
    try:
        match op:
            case ">":
                return a > b
            case ">=":
                return a >= b
            case "<":
                return a < b
            case "<=":
                return a <= b
    except TypeError:
        raise ExecutionError(f"cannot compare {a!r} with {b!r}") from None
    raise ExecutionError(f"unknown comparison '{op}'")


def and3(a: bool | None, b: bool | None) -> bool | None:
    if a is False or b is False:
        return False
    if a is None or b is None:
        return None
    return True


def or3(a: bool | None, b: bool | None) -> bool | None:
    if a is True or b is True:
        return True
    if a is None or b is None:
        return None
    return False


def fold(results: list[tuple[Connective, bool | None]]) -> bool:
    """Left-to-right fold of predicate results; UNKNOWN counts as not matching."""
    acc: bool | None = True
    for i, (connective, result) in enumerate(results):
        if i == 0:
            acc = result
        elif connective is Connective.OR:
            acc = or3(acc, result)
        else:
            acc = and3(acc, result)
    return acc is True


# -- expression trees ---------------------------------------------------------------


def _arith(op: Callable[[Any, Any], Any], a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    return op(as_number(a), as_number(b))


def _divide(a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    a, b = as_number(a), as_number(b)
    if b == 0:
        return None
    return a / b


def _cast(value: Any, target: exp.DataType) -> Any:
    if value is None:
        return None
    name = target.sql().upper()
    try:
        if "INT" in name:
            return int(as_number(value))
        if any(t in name for t in ("DEC", "NUM", "FLOAT", "DOUBLE", "REAL")):
            return float(as_number(value))
    except (TypeError, ValueError):
        raise ExecutionError(f"cannot cast {value!r} to {name}") from None
    if any(t in name for t in ("CHAR", "TEXT", "STRING")):
        return str(value)
    return value


def _literal(node: exp.Literal) -> Any:
    if node.is_string:
        return node.this
    return as_number(node.this)


class _Scope(ABC):
    """Resolves leaves of an expression tree for one evaluation mode."""

    @abstractmethod
    def column(self, table: str, name: str) -> Any: ...

    @abstractmethod
    def aggregate(self, node: exp.Expression) -> Any: ...


class RowScope(_Scope):
    def __init__(self, row: Mapping[str, Any]) -> None:
        self.row = row

    def column(self, table: str, name: str) -> Any:
        key = output_name(table, name) if table else name
        if key not in self.row:
            raise ExecutionError(f"row has no column '{key}'")
        return self.row[key]

    def aggregate(self, node: exp.Expression) -> Any:
        raise ExecutionError(f"aggregate '{node.sql()}' used in row context")


class GroupScope(_Scope):
    """One group of rows plus the aggregate aliases already computed for it."""

    def __init__(self, rows: list[Mapping[str, Any]], computed: Mapping[str, Any]) -> None:
        self.rows = rows
        self.computed = computed

    def column(self, table: str, name: str) -> Any:
        if table:
            raise ExecutionError(f"column '{table}.{name}' used outside an aggregate")
        if name not in self.computed:
            raise ExecutionError(f"aggregate alias '{name}' is not computed yet")
        return self.computed[name]

    def aggregate(self, node: exp.Expression) -> Any:
        arg = node.this
        if isinstance(node, exp.Count) and isinstance(arg, exp.Star):
            return len(self.rows)
        distinct = isinstance(arg, exp.Distinct)
        if distinct:
            if len(arg.expressions) != 1:
                raise ExecutionError("COUNT(DISTINCT ...) takes exactly one expression")
            arg = arg.expressions[0]
        values = [evaluate(arg, RowScope(r)) for r in self.rows]
        present = [v for v in values if v is not None]
        if distinct:
            unique: list[Any] = []
            for v in present:
                if v not in unique:
                    unique.append(v)
            present = unique
        if isinstance(node, exp.Count):
            return len(present)
        if not present:
            return None
        numbers = [as_number(v) for v in present]
        if isinstance(node, exp.Sum):
            return sum(numbers)
        if isinstance(node, exp.Avg):
            return sum(numbers) / len(numbers)
        try:
            if isinstance(node, exp.Min):
                return min(present)
            if isinstance(node, exp.Max):
                return max(present)
        except TypeError:
            raise ExecutionError(f"'{node.sql()}' over values of mixed types") from None
        raise ExecutionError(f"unsupported aggregate '{node.sql()}'")


def evaluate(node: exp.Expression, scope: _Scope) -> Any:
    """Evaluate an allow-listed expression tree in ``scope``."""
    if isinstance(node, AGGREGATE_FUNCTIONS):
        return scope.aggregate(node)
    match node:
        case exp.Column():
            return scope.column(node.table, node.name)
        case exp.Literal():
            return _literal(node)
        case exp.Null():
            return None
        case exp.Boolean():
            return bool(node.this)
        case exp.Paren():
            return evaluate(node.this, scope)
        case exp.Add():
            return _arith(lambda a, b: a + b, evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Sub():
            return _arith(lambda a, b: a - b, evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Mul():
            return _arith(lambda a, b: a * b, evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Div():
            return _divide(evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Mod():
            right = evaluate(node.right, scope)
            if right == 0:
                return None
            return _arith(lambda a, b: a % b, evaluate(node.left, scope), right)
        case exp.Neg():
            value = evaluate(node.this, scope)
            return None if value is None else -as_number(value)
        case exp.Coalesce():
            for arg in [node.this, *node.expressions]:
                value = evaluate(arg, scope)
                if value is not None:
                    return value
            return None
        case exp.Nullif():
            value = evaluate(node.this, scope)
            other = evaluate(node.expression, scope)
            return None if value == other else value
        case exp.Round():
            value = evaluate(node.this, scope)
            decimals = node.args.get("decimals")
            places = int(evaluate(decimals, scope)) if decimals is not None else 0
            return None if value is None else round(as_number(value), places)
        case exp.Abs():
            value = evaluate(node.this, scope)
            return None if value is None else abs(as_number(value))
        case exp.Case():
            for branch in node.args.get("ifs") or []:
                if evaluate(branch.this, scope) is True:
                    return evaluate(branch.args["true"], scope)
            default = node.args.get("default")
            return evaluate(default, scope) if default is not None else None
        case exp.If():
            if evaluate(node.this, scope) is True:
                return evaluate(node.args["true"], scope)
            other = node.args.get("false")
            return evaluate(other, scope) if other is not None else None
        case exp.Cast():
            return _cast(evaluate(node.this, scope), node.to)
        case exp.EQ():
            return _cmp(FilterOperator.EQ, node, scope)
        case exp.NEQ():
            return _cmp(FilterOperator.NEQ, node, scope)
        case exp.GT():
            return _cmp(FilterOperator.GT, node, scope)
        case exp.GTE():
            return _cmp(FilterOperator.GTE, node, scope)
        case exp.LT():
            return _cmp(FilterOperator.LT, node, scope)
        case exp.LTE():
            return _cmp(FilterOperator.LTE, node, scope)
        case exp.And():
            return and3(evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Or():
            return or3(evaluate(node.left, scope), evaluate(node.right, scope))
        case exp.Not():
            value = evaluate(node.this, scope)
            return None if value is None else not value
        case exp.Is():
            value = evaluate(node.this, scope)
            return value is None if isinstance(node.expression, exp.Null) else value == evaluate(
                node.expression, scope
            )
    raise ExecutionError(f"cannot evaluate '{node.sql()}' in memory")


def _cmp(operator: FilterOperator, node: exp.Expression, scope: _Scope) -> bool | None:
    return compare(operator, evaluate(node.left, scope), evaluate(node.right, scope))
