# tests/gateway_fakes.py

"""In-memory stand-ins for executors, sources and clocks used by tests."""

import fnmatch
import threading
import time
from datetime import datetime, timedelta
from typing import Any

from search_gateway.config.settings import Settings
from search_gateway.executors.base_executor import QueryExecutor
from search_gateway.models.errors import CacheUnavailable
from search_gateway.models.product import CatalogProduct
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import (
    FacetCount,
    FacetSet,
    PriceRange,
    RawResult,
)
from search_gateway.storage.cache_store import CacheStore


class FastSettings(Settings):
    """Short timeouts so timeout paths finish quickly."""

    PRIMARY_TIMEOUT = 0.05
    AUTOCOMPLETE_TIMEOUT = 0.05
    FALLBACK_TIMEOUT = 1.0
    AGGREGATION_TIMEOUT = 0.5


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutor(QueryExecutor):
    """Executor returning canned ids, optionally slow or failing."""

    def __init__(
        self,
        name: str = "fake",
        items: tuple[int, ...] = (1, 2, 3),
        total: int | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(name)
        self.items = tuple(items)
        self.total = total if total is not None else len(self.items)
        self.delay = delay
        self.error = error
        self.suggestions = suggestions or []
        self.alive = True
        self.closed = False
        self.calls = 0
        self.suggest_calls = 0
        self.queries: list[NormalizedQuery] = []
        self._lock = threading.Lock()

    def search(
        self, query: NormalizedQuery, timeout: float,
    ) -> RawResult:
        with self._lock:
            self.calls += 1
            self.queries.append(query)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RawResult(items=self.items, total=self.total)

    def suggest(
        self, prefix: str, limit: int, timeout: float,
    ) -> list[str]:
        with self._lock:
            self.suggest_calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.suggestions[:limit]

    def ping(self) -> bool:
        return self.alive

    def close(self) -> None:
        self.closed = True


SAMPLE_FACETS = FacetSet(
    categories=(FacetCount("phones", 4), FacetCount("laptops", 2)),
    price_range=PriceRange(min=99.0, max=1499.0),
    conditions=(FacetCount("new", 5), FacetCount("used", 1)),
)


class FakeFacetSource:
    """Counts aggregation calls; optionally raises."""

    def __init__(
        self,
        facets: FacetSet = SAMPLE_FACETS,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.facets = facets
        self.error = error
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def aggregate_facets(self, query: NormalizedQuery) -> FacetSet:
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.facets


class FakePopularitySource:
    """Returns a fixed list of popular terms."""

    def __init__(
        self,
        terms: list[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.terms = terms if terms is not None else ["iphone", "laptop"]
        self.error = error
        self.calls = 0

    def trending_terms(self, limit: int) -> list[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.terms[:limit]


class BrokenCacheStore(CacheStore):
    """Cache backend whose every operation fails."""

    def get(self, key: str) -> Any | None:
        raise CacheUnavailable("connection refused")

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        raise CacheUnavailable("connection refused")

    def delete(self, key: str) -> bool:
        raise CacheUnavailable("connection refused")

    def clear(self) -> int:
        raise CacheUnavailable("connection refused")


class ExactKeyStore(CacheStore):
    """Dict-backed store that cannot enumerate its keys."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self.data[key] = value

    def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self.data)
        self.data.clear()
        return count


def make_product(
    product_id: int,
    title: str,
    price: float = 100.0,
    **overrides: Any,
) -> CatalogProduct:
    """Build a listing with a deterministic creation time."""
    fields: dict[str, Any] = {
        "created_at": datetime(2025, 1, 1) + timedelta(days=product_id),
    }
    fields.update(overrides)
    return CatalogProduct(id=product_id, title=title, price=price, **fields)


SAMPLE_PRODUCTS: list[CatalogProduct] = [
    make_product(
        1, "iPhone 13 Pro", 899.0,
        category="Phones", condition="used", tags=["Apple", "5G"],
        stock=2, seller_rating=4.8, views=500, owner_id=7,
        description="Great condition smartphone",
    ),
    make_product(
        2, "iPhone 12", 599.0,
        category="Phones", condition="used", tags=["apple"],
        stock=0, seller_rating=4.1, views=300, owner_id=8,
    ),
    make_product(
        3, "Galaxy S23", 749.0,
        category="Phones", condition="new", tags=["samsung", "5g"],
        stock=5, seller_rating=4.5, views=800, owner_id=7,
    ),
    make_product(
        4, "MacBook Air M2", 1199.0,
        category="Laptops", condition="new", tags=["apple"],
        stock=1, seller_rating=4.9, views=650, owner_id=9,
    ),
    make_product(
        5, "ThinkPad X1", 999.0,
        category="Laptops", condition="refurbished", tags=["lenovo"],
        stock=3, seller_rating=3.9, views=120, owner_id=9,
    ),
    make_product(
        6, "iPhone 11 (sold)", 399.0,
        category="Phones", condition="used", is_sold=True, views=900,
    ),
    make_product(
        7, "Hidden Pixel 7", 499.0,
        category="Phones", condition="new", is_active=False, views=950,
    ),
]


class FakeRedisClient:
    """Dict-backed stand-in for a ``redis.Redis`` client.

    ``delay`` makes every round trip block the calling thread, like a
    slow network would.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.data: dict[str, str] = {}
        self.get_calls = 0
        self._lock = threading.Lock()

    def _wait(self) -> None:
        if self.delay:
            time.sleep(self.delay)

    def get(self, key: str) -> str | None:
        self._wait()
        with self._lock:
            self.get_calls += 1
            return self.data.get(key)

    def set(self, key: str, value: str, px: int | None = None) -> bool:
        self._wait()
        with self._lock:
            self.data[key] = value
        return True

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for k in keys if self.data.pop(k, None) is not None)

    def scan_iter(self, match: str = "*") -> list[str]:
        with self._lock:
            return [k for k in self.data if fnmatch.fnmatchcase(k, match)]

    def ping(self) -> bool:
        return True
