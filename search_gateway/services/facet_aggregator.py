# search_gateway/services/facet_aggregator.py

"""Category, price-range and condition counts, cached on their own TTL."""

import asyncio
import logging

from search_gateway.config.settings import Settings
from search_gateway.executors.base_executor import FacetSource
from search_gateway.filters.query_normalizer import facet_cache_key
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import FacetSet
from search_gateway.services.request_coalescer import RequestCoalescer
from search_gateway.storage.cache_store import (
    CacheStore,
    cache_get,
    cache_set,
)

logger = logging.getLogger("search_gateway.facets")


class FacetAggregator:
    """Computes facets for a query's filter predicate, ignoring paging.

    Facet distributions move more slowly than individual result pages,
    so they live under their own key on a longer TTL. Failures yield
    the default (empty) facet set, which is never cached.
    """

    def __init__(
        self,
        source: FacetSource,
        cache: CacheStore,
        coalescer: RequestCoalescer[FacetSet] | None = None,
        ttl: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.coalescer = coalescer or RequestCoalescer[FacetSet]()
        self.ttl = ttl or Settings.FACET_CACHE_TTL
        self.timeout = timeout or Settings.AGGREGATION_TIMEOUT

    async def get_facets(self, query: NormalizedQuery) -> FacetSet:
        key = facet_cache_key(query)
        cached = await cache_get(self.cache, key)
        if isinstance(cached, FacetSet):
            logger.debug("Facets cache HIT %s", key)
            return cached

        try:
            facets, _ = await self.coalescer.run(
                key, lambda: self._compute(key, query)
            )
        except Exception as exc:
            logger.error(
                "Facet aggregation failed for '%s': %s", query.text, exc,
            )
            return FacetSet()
        return facets

    async def _compute(self, key: str, query: NormalizedQuery) -> FacetSet:
        facets = await asyncio.wait_for(
            asyncio.to_thread(self.source.aggregate_facets, query),
            timeout=self.timeout,
        )
        await cache_set(self.cache, key, facets, self.ttl)
        return facets
