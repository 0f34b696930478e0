"""Flat-file connector: CSV / spreadsheet-derived tables served from an in-memory SQLite copy."""

from __future__ import annotations

import csv
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from modelweave.connectors.sqlite import SqliteConnector
from modelweave.models.source import SourceKind

logger = logging.getLogger("modelweave.connectors")


def coerce_cell(raw: str | None) -> Any:
    """Typed value for a CSV cell: empty -> None, then int, float, else the text."""
    if raw is None:
        return None
    text = raw.strip()
    if text == "":
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


class FlatFileConnector(SqliteConnector):
    """Tables loaded from uploaded files; queried with the SQLite dialect."""

    def __init__(self, source_id: str) -> None:
        super().__init__(source_id, ":memory:")

    @property
    def kind(self) -> SourceKind:
        return SourceKind.FLAT_FILE

    @classmethod
    def from_csv(cls, source_id: str, files: Mapping[str, str | Path]) -> FlatFileConnector:
        """Load ``{table name: csv path}``; the header row names the columns."""
        connector = cls(source_id)
        for table, path in files.items():
            connector.load_csv(table, path)
        return connector

    @classmethod
    def from_records(
        cls, source_id: str, tables: Mapping[str, list[dict[str, Any]]]
    ) -> FlatFileConnector:
        connector = cls(source_id)
        for table, rows in tables.items():
            connector.load_rows(table, rows)
        return connector

    def load_csv(self, table: str, path: str | Path) -> None:
        with Path(path).open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            columns = [c.strip() for c in reader.fieldnames or []]
            rows = [
                {c: coerce_cell(raw.get(orig)) for c, orig in zip(columns, reader.fieldnames or [], strict=True)}
                for raw in reader
            ]
        logger.info("Loaded %d rows into '%s.%s' from %s", len(rows), self.source_id, table, path)
        self.load_rows(table, rows, columns=columns)
