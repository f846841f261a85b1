# search_gateway/executors/catalog_executor.py

"""Fallback executor: filtered scans over the relational catalog."""

import sqlite3

from search_gateway.executors.base_executor import QueryExecutor
from search_gateway.models.errors import ExecutorUnavailable
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import RawResult
from search_gateway.storage.catalog_db import CatalogDB


class CatalogExecutor(QueryExecutor):
    """Slower but always-available executor backed by :class:`CatalogDB`.

    Never gated by the circuit breaker. SQLite has no per-query
    timeout, so ``timeout`` is enforced only by the gateway's wait.
    """

    def __init__(self, catalog: CatalogDB) -> None:
        super().__init__("catalog")
        self.catalog = catalog

    def search(
        self, query: NormalizedQuery, timeout: float,
    ) -> RawResult:
        try:
            ids, total = self.catalog.search(query)
        except sqlite3.Error as exc:
            raise ExecutorUnavailable(self.name, str(exc)) from exc
        self.logger.debug(
            "Catalog search '%s' page=%d -> %d/%d",
            query.text,
            query.page,
            len(ids),
            total,
        )
        return RawResult(items=tuple(ids), total=total)

    def suggest(
        self, prefix: str, limit: int, timeout: float,
    ) -> list[str]:
        try:
            return self.catalog.suggest_titles(prefix, limit)
        except sqlite3.Error as exc:
            raise ExecutorUnavailable(self.name, str(exc)) from exc

    def ping(self) -> bool:
        return self.catalog.ping()

    def close(self) -> None:
        self.catalog.close()
