"""Join discovery: ranked join candidates from declared keys, naming heuristics and hints."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import StrEnum
from itertools import combinations

from pydantic import BaseModel, Field

from modelweave.models.description import JoinCondition, JoinKind
from modelweave.models.source import ColumnDescriptor, TableSchema

logger = logging.getLogger("modelweave.discovery")

FOREIGN_KEY_CONFIDENCE = 1.0
HINT_CEILING = 0.45
HINT_BOOST = 0.05
BOOSTED_CEILING = 0.9

# pattern -> confidence, in evaluation order
HEURISTICS: dict[str, float] = {
    "id_pattern": 0.80,
    "matching_suffix": 0.75,
    "exact_name_match": 0.70,
    "table_reference": 0.65,
    "common_identifier": 0.60,
}

IDENTIFIER_PATTERNS = ("uuid", "code", "key", "reference", "ref")

# Names shared by unrelated tables; an exact match on these says nothing.
GENERIC_COLUMNS = frozenset(
    {
        "id", "name", "title", "description", "type", "status", "value", "label",
        "created", "updated", "created_at", "updated_at", "deleted_at",
        "created_on", "updated_on", "modified_at", "timestamp", "date",
    }
)

_IRREGULAR = {"people": "person", "children": "child", "men": "man", "women": "woman"}

TYPE_FAMILIES: dict[str, tuple[str, ...]] = {
    "int": ("int", "serial"),
    "numeric": ("numeric", "decimal", "real", "double", "float", "money", "number"),
    "text": ("char", "text", "string", "clob"),
    "temporal": ("date", "time"),
    "uuid": ("uuid",),
}


def singularize(word: str) -> str:
    lower = word.lower()
    if lower in _IRREGULAR:
        return _IRREGULAR[lower]
    if lower.endswith("ies") and len(lower) > 3:
        return lower[:-3] + "y"
    if lower.endswith(("ses", "xes", "zes", "ches", "shes")):
        return lower[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return lower[:-1]
    return lower


def type_family(type_name: str) -> str | None:
    lower = type_name.lower()
    if "uuid" in lower:
        return "uuid"
    if "interval" in lower:
        return None
    for family, needles in TYPE_FAMILIES.items():
        if any(n in lower for n in needles):
            return family
    return None


def types_compatible(left: str, right: str) -> bool:
    """Same type, same family, or int against numeric (join keys are normalised later)."""
    if not left or not right:
        return False
    if left.lower() == right.lower():
        return True
    lf, rf = type_family(left), type_family(right)
    if lf is None or rf is None:
        return False
    return lf == rf or {lf, rf} == {"int", "numeric"}


class ConfidenceLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CandidateSource(StrEnum):
    FOREIGN_KEY = "foreign_key"
    HEURISTIC = "heuristic"
    HINT = "hint"


class JoinHint(BaseModel):
    """An untrusted join suggestion from an external collaborator."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    reason: str = ""


class JoinCandidate(BaseModel):
    """One suggested join condition between two table aliases."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str
    confidence: float
    source: CandidateSource
    pattern: str
    reason: str = ""
    join_type: JoinKind = JoinKind.LEFT

    @property
    def confidence_level(self) -> ConfidenceLevel:
        if self.confidence >= 0.7:
            return ConfidenceLevel.HIGH
        if self.confidence >= 0.4:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    @property
    def pair_key(self) -> frozenset[tuple[str, str]]:
        return frozenset({(self.left_table, self.left_column), (self.right_table, self.right_column)})

    def to_join_condition(self, join_type: JoinKind | None = None) -> JoinCondition:
        return JoinCondition(
            left_table=self.left_table,
            left_column=self.left_column,
            right_table=self.right_table,
            right_column=self.right_column,
            join_type=join_type or self.join_type,
        )


def _table_name(schema: TableSchema) -> str:
    return (schema.table or schema.alias).lower()


def match_columns(
    left: TableSchema, lcol: ColumnDescriptor, right: TableSchema, rcol: ColumnDescriptor
) -> tuple[str, str] | None:
    """Best naming heuristic linking ``lcol`` and ``rcol``; ``(pattern, reason)`` or None."""
    if not types_compatible(lcol.type, rcol.type):
        return None
    lname, rname = lcol.name.lower(), rcol.name.lower()
    ltable, rtable = _table_name(left), _table_name(right)
    lsingular, rsingular = singularize(ltable), singularize(rtable)

    def refers_to(column: str, table: str, singular: str) -> bool:
        return column in (f"{singular}_id", f"{table}_id")

    if lname == "id" and refers_to(rname, ltable, lsingular):
        return "id_pattern", f"{right.alias}.{rcol.name} names {left.alias}.id"
    if rname == "id" and refers_to(lname, rtable, rsingular):
        return "id_pattern", f"{left.alias}.{lcol.name} names {right.alias}.id"

    if lname.endswith("_id") and lname == rname:
        return "matching_suffix", f"both tables carry {lcol.name}"

    if lname == rname and lname not in GENERIC_COLUMNS:
        return "exact_name_match", f"same column name {lcol.name}"

    if rname == "id" and rsingular in lname:
        return "table_reference", f"{left.alias}.{lcol.name} mentions {right.alias}"
    if lname == "id" and lsingular in rname:
        return "table_reference", f"{right.alias}.{rcol.name} mentions {left.alias}"

    for pattern in IDENTIFIER_PATTERNS:
        if lname == pattern and rname == pattern:
            return "common_identifier", f"shared identifier {pattern}"
        if lname == f"{rsingular}_{pattern}" and rname == pattern:
            return "common_identifier", f"{left.alias}.{lcol.name} references {right.alias}.{pattern}"
        if rname == f"{lsingular}_{pattern}" and lname == pattern:
            return "common_identifier", f"{right.alias}.{rcol.name} references {left.alias}.{pattern}"
    return None


class JoinDiscoveryService:
    """Suggests join conditions between tables; never applies them.

    Declared foreign keys always outrank naming heuristics, and external
    hints always rank lowest unless a heuristic confirms them.
    """

    def __init__(self, min_confidence: float = 0.3) -> None:
        self.min_confidence = min_confidence

    def suggest(
        self, tables: Sequence[TableSchema], hints: Iterable[JoinHint] = ()
    ) -> list[JoinCandidate]:
        best: dict[frozenset[tuple[str, str]], JoinCandidate] = {}

        def offer(candidate: JoinCandidate) -> None:
            key = candidate.pair_key
            current = best.get(key)
            if current is None or candidate.confidence > current.confidence:
                best[key] = candidate

        for candidate in self._foreign_keys(tables):
            offer(candidate)
        for candidate in self._heuristics(tables):
            offer(candidate)
        for hint in hints:
            self._apply_hint(hint, tables, best)

        ranked = sorted(
            (c for c in best.values() if c.confidence >= self.min_confidence),
            key=lambda c: (-c.confidence, c.left_table, c.left_column, c.right_table, c.right_column),
        )
        logger.debug("Join discovery over %d tables produced %d candidates", len(tables), len(ranked))
        return ranked

    def _foreign_keys(self, tables: Sequence[TableSchema]) -> list[JoinCandidate]:
        out = []
        for schema in tables:
            for fk in schema.foreign_keys:
                target = fk.references_table.lower()
                for other in tables:
                    if other.alias == schema.alias or target not in (_table_name(other), other.alias.lower()):
                        continue
                    if other.column(fk.references_column) is None:
                        continue
                    out.append(
                        JoinCandidate(
                            left_table=schema.alias,
                            left_column=fk.column,
                            right_table=other.alias,
                            right_column=fk.references_column,
                            confidence=FOREIGN_KEY_CONFIDENCE,
                            source=CandidateSource.FOREIGN_KEY,
                            pattern="foreign_key",
                            reason=f"declared key {schema.alias}.{fk.column} -> {other.alias}.{fk.references_column}",
                        )
                    )
        return out

    def _heuristics(self, tables: Sequence[TableSchema]) -> list[JoinCandidate]:
        out = []
        for left, right in combinations(tables, 2):
            for lcol in left.columns:
                for rcol in right.columns:
                    matched = match_columns(left, lcol, right, rcol)
                    if matched is None:
                        continue
                    pattern, reason = matched
                    out.append(
                        JoinCandidate(
                            left_table=left.alias,
                            left_column=lcol.name,
                            right_table=right.alias,
                            right_column=rcol.name,
                            confidence=HEURISTICS[pattern],
                            source=CandidateSource.HEURISTIC,
                            pattern=pattern,
                            reason=reason,
                        )
                    )
        return out

    def _apply_hint(
        self,
        hint: JoinHint,
        tables: Sequence[TableSchema],
        best: dict[frozenset[tuple[str, str]], JoinCandidate],
    ) -> None:
        by_alias = {t.alias: t for t in tables}
        left, right = by_alias.get(hint.left_table), by_alias.get(hint.right_table)
        if (
            left is None
            or right is None
            or left.alias == right.alias
            or left.column(hint.left_column) is None
            or right.column(hint.right_column) is None
        ):
            logger.warning(
                "Dropping join hint %s.%s = %s.%s: unknown table or column",
                hint.left_table, hint.left_column, hint.right_table, hint.right_column,
            )
            return

        key = frozenset({(hint.left_table, hint.left_column), (hint.right_table, hint.right_column)})
        current = best.get(key)
        if current is not None and current.source is CandidateSource.HEURISTIC:
            boosted = min(BOOSTED_CEILING, current.confidence + HINT_BOOST)
            best[key] = current.model_copy(
                update={"confidence": round(boosted, 4), "reason": f"{current.reason}; confirmed by hint"}
            )
            return
        if current is not None:
            return
        best[key] = JoinCandidate(
            left_table=hint.left_table,
            left_column=hint.left_column,
            right_table=hint.right_table,
            right_column=hint.right_column,
            confidence=round(min(HINT_CEILING, HINT_CEILING * hint.confidence), 4),
            source=CandidateSource.HINT,
            pattern="external_hint",
            reason=hint.reason or "external hint",
        )
