"""Source registry: resolves source ids to connectors and guards every call with deadlines and retries."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from modelweave.connectors.base import SourceConnector
from modelweave.errors import ConnectorError, ExecutionTimeout, UnknownSourceError
from modelweave.models.result import CompiledQuery
from modelweave.models.source import ColumnDescriptor, ForeignKey, RowSet, TableDescriptor

logger = logging.getLogger("modelweave.connectors")

T = TypeVar("T")


class SourceRegistry:
    """Connectors keyed by source id.

    Populated at start-up and read-only afterwards, so concurrent requests
    can share one registry. Only ``connection_lost`` failures are retried.
    """

    def __init__(self, *, retries: int = 1) -> None:
        self._connectors: dict[str, SourceConnector] = {}
        self._retries = max(0, retries)

    def register(self, connector: SourceConnector) -> SourceConnector:
        if connector.source_id in self._connectors:
            raise ValueError(f"source '{connector.source_id}' is already registered")
        self._connectors[connector.source_id] = connector
        logger.info(
            "Registered source '%s' (%s, dialect=%s)",
            connector.source_id, connector.kind.value, connector.dialect,
        )
        return connector

    def get(self, source_id: str) -> SourceConnector:
        try:
            return self._connectors[source_id]
        except KeyError:
            raise UnknownSourceError(source_id, available=self.source_ids()) from None

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._connectors

    def source_ids(self) -> list[str]:
        return sorted(self._connectors)

    def sources(self) -> list[SourceConnector]:
        return [self._connectors[s] for s in self.source_ids()]

    async def execute(self, source_id: str, compiled: CompiledQuery, timeout: float) -> RowSet:
        connector = self.get(source_id)
        started = time.perf_counter()
        rowset = await self._guarded(
            source_id, "query", lambda: connector.execute_query(compiled), timeout
        )
        logger.debug(
            "Source '%s' returned %d rows in %.1f ms",
            source_id, len(rowset.rows), (time.perf_counter() - started) * 1000,
        )
        return rowset

    async def list_tables(self, source_id: str, timeout: float) -> list[TableDescriptor]:
        connector = self.get(source_id)
        return await self._guarded(source_id, "list_tables", connector.list_tables, timeout)

    async def list_columns(self, source_id: str, table: str, timeout: float) -> list[ColumnDescriptor]:
        connector = self.get(source_id)
        return await self._guarded(
            source_id, "list_columns", lambda: connector.list_columns(table), timeout
        )

    async def list_foreign_keys(self, source_id: str, table: str, timeout: float) -> list[ForeignKey]:
        connector = self.get(source_id)
        return await self._guarded(
            source_id, "list_foreign_keys", lambda: connector.list_foreign_keys(table), timeout
        )

    async def close(self) -> None:
        for connector in self._connectors.values():
            await connector.close()

    async def _guarded(
        self,
        source_id: str,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: float,
    ) -> T:
        """Run ``call`` under ``timeout`` seconds in total, retrying lost connections."""
        deadline = time.monotonic() + timeout
        max_attempts = self._retries + 1
        for attempt in range(1, max_attempts + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                async with asyncio.timeout(remaining):
                    return await call()
            except TimeoutError:
                raise ExecutionTimeout(
                    f"Source '{source_id}' {operation} exceeded {timeout:g}s"
                ) from None
            except ConnectorError as exc:
                if not exc.retryable or attempt >= max_attempts:
                    raise
                logger.warning(
                    "Source '%s' %s failed (attempt %d/%d): %s",
                    source_id, operation, attempt, max_attempts, exc,
                )
                await asyncio.sleep(min(0.25 * attempt, 1.0, max(deadline - time.monotonic(), 0)))
        raise ExecutionTimeout(f"Source '{source_id}' {operation} exceeded {timeout:g}s")
