# search_gateway/executors/base_executor.py

"""Abstract base class for query executors, plus aggregation protocols."""

import logging
from abc import ABC, abstractmethod
from typing import Protocol

from search_gateway.config.settings import Settings
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import FacetSet, RawResult


class QueryExecutor(ABC):
    """A backend that answers normalized queries with ranked ids.

    Implementations are blocking; the gateway runs them on worker
    threads and bounds the wait itself. ``timeout`` is passed through
    so an executor can also stop its own I/O early. Failures are raised
    as :class:`~search_gateway.models.errors.ExecutorFailure`
    subclasses.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(
            f"search_gateway.executor.{name}"
        )
        self.settings = Settings()

    @abstractmethod
    def search(
        self, query: NormalizedQuery, timeout: float,
    ) -> RawResult:
        """Return one page of ranked product ids and the total count."""
        ...

    @abstractmethod
    def suggest(
        self, prefix: str, limit: int, timeout: float,
    ) -> list[str]:
        """Return up to ``limit`` distinct title suggestions."""
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Cheap liveness probe used by the health checker."""
        ...

    def close(self) -> None:
        """Release connections held by the executor."""
        return None


class FacetSource(Protocol):
    """Anything that can aggregate facets over a filter predicate."""

    def aggregate_facets(self, query: NormalizedQuery) -> FacetSet:
        ...


class PopularitySource(Protocol):
    """Anything that can list currently popular search terms."""

    def trending_terms(self, limit: int) -> list[str]:
        ...
