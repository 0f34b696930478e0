"""Data-source connectors and the source registry."""

from modelweave.connectors.base import SourceConnector, decode_rows
from modelweave.connectors.document import InMemoryDocumentConnector
from modelweave.connectors.flatfile import FlatFileConnector
from modelweave.connectors.registry import SourceRegistry
from modelweave.connectors.sqlite import SqliteConnector

__all__ = [
    "FlatFileConnector",
    "InMemoryDocumentConnector",
    "SourceConnector",
    "SourceRegistry",
    "SqliteConnector",
    "decode_rows",
]
