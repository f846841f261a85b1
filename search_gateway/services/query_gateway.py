# search_gateway/services/query_gateway.py

"""Resilient query gateway: cache, coalescing, breaker and fallback."""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any, TypeVar

from search_gateway.config.settings import Settings
from search_gateway.executors.base_executor import (
    FacetSource,
    PopularitySource,
    QueryExecutor,
)
from search_gateway.filters.query_normalizer import (
    autocomplete_cache_key,
    cache_key,
    normalize_query,
    normalize_text,
    trending_cache_key,
)
from search_gateway.models.errors import (
    AllExecutorsFailed,
    ExecutorTimeout,
    ValidationError,
)
from search_gateway.models.query import (
    NormalizedQuery,
    SearchFilters,
    SearchOptions,
)
from search_gateway.models.result import (
    FacetSet,
    RawResult,
    ResultSource,
    SearchResult,
)
from search_gateway.services.circuit_breaker import CircuitBreaker
from search_gateway.services.facet_aggregator import FacetAggregator
from search_gateway.services.health_checker import (
    HealthChecker,
    HealthReport,
    cache_roundtrip,
)
from search_gateway.services.metrics import (
    MetricsCollector,
    MetricsReporter,
    MetricsSnapshot,
)
from search_gateway.services.request_coalescer import RequestCoalescer
from search_gateway.storage.cache_store import (
    CacheStore,
    InMemoryCacheStore,
    cache_get,
    cache_set,
)

logger = logging.getLogger("search_gateway.gateway")

T = TypeVar("T")


def _check_limit(value: object, upper: int) -> int:
    if (
        not isinstance(value, int)
        or isinstance(value, bool)
        or not 1 <= value <= upper
    ):
        raise ValidationError("limit", f"must be between 1 and {upper}")
    return value


class QueryGateway:
    """Answers product searches through cache, primary and fallback.

    Read path for ``search``: validate and normalize, probe the cache,
    then coalesce identical in-flight misses onto one supplier. The
    supplier tries the primary executor when the breaker allows it and
    falls back to the secondary executor on any primary failure.
    Non-empty results are cached. A well-formed query never raises:
    when both executors fail the caller gets an empty result tagged
    ``error``.
    """

    def __init__(
        self,
        primary: QueryExecutor,
        fallback: QueryExecutor,
        cache: CacheStore | None = None,
        breaker: CircuitBreaker | None = None,
        metrics: MetricsCollector | None = None,
        coalescer: RequestCoalescer[Any] | None = None,
        facets: FacetSource | None = None,
        popularity: PopularitySource | None = None,
        settings: Settings | None = None,
        timer: Callable[[], float] = time.perf_counter,
        metrics_sink: Callable[[MetricsSnapshot], None] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.primary = primary
        self.fallback = fallback
        self.cache = cache if cache is not None else InMemoryCacheStore()
        self.breaker = breaker or CircuitBreaker(
            name=primary.name,
            threshold=self.settings.CIRCUIT_BREAKER_THRESHOLD,
            cooldown=self.settings.CIRCUIT_BREAKER_COOLDOWN,
            half_open=self.settings.CIRCUIT_BREAKER_HALF_OPEN,
        )
        self.metrics = metrics or MetricsCollector(
            buffer_size=self.settings.LATENCY_BUFFER_SIZE,
        )
        self.reporter = MetricsReporter(
            self.metrics,
            interval=self.settings.METRICS_REPORT_INTERVAL,
            sink=metrics_sink,
        )
        self.coalescer: RequestCoalescer[Any] = (
            coalescer or RequestCoalescer[Any]()
        )
        self.facet_aggregator = (
            FacetAggregator(
                facets,
                self.cache,
                coalescer=self.coalescer,
                ttl=self.settings.FACET_CACHE_TTL,
                timeout=self.settings.AGGREGATION_TIMEOUT,
            )
            if facets is not None
            else None
        )
        self.popularity = popularity
        self._timer = timer

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "QueryGateway":
        """Wire the index, the SQLite catalog and the configured cache."""
        from search_gateway.executors.catalog_executor import CatalogExecutor
        from search_gateway.executors.index_executor import IndexExecutor
        from search_gateway.storage.catalog_db import CatalogDB
        from search_gateway.storage.redis_cache_store import RedisCacheStore

        cfg = settings or Settings()
        catalog = CatalogDB(cfg.CATALOG_DB_PATH)
        cache: CacheStore
        if cfg.CACHE_BACKEND == "redis":
            cache = RedisCacheStore(
                url=cfg.REDIS_URL, namespace=cfg.REDIS_NAMESPACE,
            )
        else:
            cache = InMemoryCacheStore()
        logger.info(
            "Gateway wired: index=%s/%s cache=%s catalog=%s",
            cfg.INDEX_HOST,
            cfg.INDEX_UID,
            cfg.CACHE_BACKEND,
            cfg.CATALOG_DB_PATH,
        )
        return cls(
            primary=IndexExecutor(
                cfg.INDEX_HOST, cfg.INDEX_API_KEY, cfg.INDEX_UID,
            ),
            fallback=CatalogExecutor(catalog),
            cache=cache,
            facets=catalog,
            popularity=catalog,
            settings=cfg,
        )

    # ── Private helpers ──────────────────────────────────

    async def _call(
        self, fn: Callable[..., T], *args: Any, timeout: float,
    ) -> T:
        """Run a blocking executor call on a worker thread, bounded.

        On timeout the wait is abandoned and whatever the thread later
        returns is dropped.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, timeout), timeout=timeout,
            )
        except asyncio.TimeoutError:
            owner = getattr(fn, "__self__", None)
            name = getattr(owner, "name", getattr(fn, "__name__", "call"))
            raise ExecutorTimeout(
                name, f"no response within {timeout}s"
            ) from None

    async def _with_fallback(
        self,
        operation: str,
        primary_call: Callable[[], Any],
        fallback_call: Callable[[], Any],
    ) -> tuple[Any, ResultSource]:
        """Try the primary when the breaker allows it, else the fallback.

        Every primary outcome is reported to the breaker. The fallback
        is never gated.
        """
        if self.breaker.allow():
            try:
                value = await primary_call()
            except Exception as exc:
                self.breaker.record_failure()
                logger.warning(
                    "Primary %s failed, using fallback: %s", operation, exc,
                )
            else:
                self.breaker.record_success()
                return value, ResultSource.PRIMARY
        else:
            logger.info(
                "Circuit open, routing %s to fallback", operation,
            )

        try:
            value = await fallback_call()
        except Exception as exc:
            logger.error("Fallback %s failed: %s", operation, exc)
            raise AllExecutorsFailed(
                f"{operation}: primary and fallback both failed"
            ) from exc
        return value, ResultSource.FALLBACK

    def _build_result(
        self, query: NormalizedQuery, raw: RawResult, source: ResultSource,
    ) -> SearchResult:
        total_pages = math.ceil(raw.total / query.page_size) if raw.total else 0
        return SearchResult(
            items=raw.items,
            total=raw.total,
            page=query.page,
            page_size=query.page_size,
            total_pages=total_pages,
            has_more=query.page < total_pages,
            source=source,
        )

    async def _execute_search(
        self, query: NormalizedQuery, key: str, cacheable: bool,
    ) -> SearchResult:
        """Supplier shared by every coalesced caller of ``key``."""

        async def primary() -> RawResult:
            self.metrics.record_primary_call()
            return await self._call(
                self.primary.search,
                query,
                timeout=self.settings.PRIMARY_TIMEOUT,
            )

        async def fallback() -> RawResult:
            self.metrics.record_fallback_call()
            return await self._call(
                self.fallback.search,
                query,
                timeout=self.settings.FALLBACK_TIMEOUT,
            )

        raw, source = await self._with_fallback("search", primary, fallback)
        result = self._build_result(query, raw, source)
        if cacheable and not result.is_empty:
            await cache_set(
                self.cache, key, result, self.settings.RESULT_CACHE_TTL,
            )
        return result

    # ── Public API ───────────────────────────────────────

    async def search(
        self,
        text: str | None,
        filters: SearchFilters | None = None,
        options: SearchOptions | None = None,
    ) -> SearchResult:
        """Run one product search.

        Raises :class:`ValidationError` for malformed input; every
        other failure is reported through ``source=error``.
        """
        opts = options or SearchOptions()
        query = normalize_query(text, filters, opts, self.settings)
        key = cache_key(query)
        start = self._timer()
        cache_hit = False

        try:
            cached = (
                await cache_get(self.cache, key) if opts.cacheable else None
            )
            if isinstance(cached, SearchResult):
                cache_hit = True
                result = replace(cached, source=ResultSource.CACHE)
                logger.debug("Cache HIT %s", key)
            else:
                result, joined = await self.coalescer.run(
                    key,
                    lambda: self._execute_search(query, key, opts.cacheable),
                )
                if joined:
                    result = replace(result, source=ResultSource.COALESCED)
        except Exception as exc:
            self.metrics.record_error()
            logger.error(
                "Search failed for '%s': %s", query.text, exc, exc_info=True,
            )
            result = self._build_result(
                query, RawResult(items=(), total=0), ResultSource.ERROR,
            )

        took_ms = (self._timer() - start) * 1000
        self.metrics.record_query(took_ms, cache_hit)
        logger.info(
            "Search '%s' page=%d -> %d/%d from %s in %.1fms",
            query.text,
            query.page,
            len(result.items),
            result.total,
            result.source.value,
            took_ms,
        )

        result = replace(result, took_ms=took_ms)
        if opts.include_facets:
            result = replace(result, facets=await self._facets_for(query))
        return result

    async def autocomplete(
        self, prefix: str | None, limit: int | None = None,
    ) -> list[str]:
        """Title suggestions for a typed prefix; ``[]`` on any fault."""
        count = _check_limit(
            limit if limit is not None else self.settings.DEFAULT_SUGGESTIONS,
            self.settings.MAX_SUGGESTIONS,
        )
        term = normalize_text(prefix)
        if len(term) < self.settings.MIN_AUTOCOMPLETE_LENGTH:
            return []
        if len(term) > self.settings.MAX_QUERY_LENGTH:
            raise ValidationError(
                "prefix",
                f"too long (max {self.settings.MAX_QUERY_LENGTH} characters)",
            )

        key = autocomplete_cache_key(term, count)
        cached = await cache_get(self.cache, key)
        if isinstance(cached, (list, tuple)):
            return list(cached)

        async def primary() -> list[str]:
            self.metrics.record_primary_call()
            return await self._call(
                self.primary.suggest,
                term,
                count,
                timeout=self.settings.AUTOCOMPLETE_TIMEOUT,
            )

        async def fallback() -> list[str]:
            self.metrics.record_fallback_call()
            return await self._call(
                self.fallback.suggest,
                term,
                count,
                timeout=self.settings.FALLBACK_TIMEOUT,
            )

        async def supply() -> tuple[str, ...]:
            suggestions, _ = await self._with_fallback(
                "autocomplete", primary, fallback,
            )
            values = tuple(suggestions)
            if values:
                await cache_set(
                    self.cache,
                    key,
                    values,
                    self.settings.AUTOCOMPLETE_CACHE_TTL,
                )
            return values

        try:
            values, _ = await self.coalescer.run(key, supply)
        except Exception as exc:
            logger.error("Autocomplete failed for '%s': %s", term, exc)
            return []
        return list(values)

    async def trending(self, limit: int | None = None) -> list[str]:
        """Currently popular search terms; ``[]`` on any fault."""
        count = _check_limit(
            limit if limit is not None else self.settings.DEFAULT_TRENDING,
            self.settings.MAX_SUGGESTIONS,
        )
        if self.popularity is None:
            return []
        source = self.popularity

        key = trending_cache_key(count)
        cached = await cache_get(self.cache, key)
        if isinstance(cached, (list, tuple)):
            return list(cached)

        async def supply() -> tuple[str, ...]:
            terms = await asyncio.wait_for(
                asyncio.to_thread(source.trending_terms, count),
                timeout=self.settings.AGGREGATION_TIMEOUT,
            )
            values = tuple(terms)
            if values:
                await cache_set(
                    self.cache, key, values, self.settings.TRENDING_CACHE_TTL,
                )
            return values

        try:
            values, _ = await self.coalescer.run(key, supply)
        except Exception as exc:
            logger.error("Trending lookup failed: %s", exc)
            return []
        return list(values)

    async def _facets_for(self, query: NormalizedQuery) -> FacetSet:
        if self.facet_aggregator is None:
            return FacetSet()
        return await self.facet_aggregator.get_facets(query)

    async def get_facets(
        self, text: str | None, filters: SearchFilters | None = None,
    ) -> FacetSet:
        """Facet counts for a query predicate, ignoring pagination."""
        query = normalize_query(text, filters, None, self.settings)
        return await self._facets_for(query)

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop cached entries; everything when ``pattern`` is None.

        Glob patterns are honoured when the store can list its keys;
        otherwise ``pattern`` is treated as one exact key. Errors are
        logged and reported as zero removals.
        """
        try:
            if pattern is None:
                removed = self.cache.clear()
            else:
                try:
                    keys = self.cache.keys(pattern)
                except NotImplementedError:
                    keys = [pattern]
                removed = sum(1 for k in keys if self.cache.delete(k))
        except Exception as exc:
            logger.error("Cache invalidation failed (%s): %s", pattern, exc)
            return 0
        logger.info(
            "Invalidated %d cache entries (pattern=%s)", removed, pattern,
        )
        return removed

    def metrics_snapshot(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    def start_reporting(self) -> None:
        """Log a metrics snapshot every ``METRICS_REPORT_INTERVAL`` seconds.

        Must be called from a running event loop.
        """
        self.reporter.start()

    async def health_check(self) -> HealthReport:
        """Probe primary, fallback and cache concurrently."""
        checker = HealthChecker(
            {
                "primary": self.primary.ping,
                "fallback": self.fallback.ping,
                "cache": lambda: cache_roundtrip(self.cache),
            },
            breaker=self.breaker,
            slow_ms=self.settings.HEALTH_SLOW_MS,
        )
        return await checker.check_all()

    def close(self) -> None:
        """Release executor connections."""
        for executor in (self.primary, self.fallback):
            try:
                executor.close()
            except Exception as exc:
                logger.warning("Failed to close %s: %s", executor.name, exc)

    async def shutdown(self) -> None:
        """Stop periodic reporting, flush a final snapshot, then close."""
        if self.reporter.running:
            await self.reporter.stop()
            self.reporter.report()
        self.close()
