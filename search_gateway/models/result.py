# search_gateway/models/result.py

"""Result value types returned by executors and the gateway."""

from dataclasses import dataclass, field
from enum import Enum


class ResultSource(str, Enum):
    """Provenance of a search result."""

    CACHE = "cache"
    PRIMARY = "primary"
    FALLBACK = "fallback"
    COALESCED = "coalesced"
    ERROR = "error"


@dataclass(frozen=True)
class RawResult:
    """What an executor returns: ranked product ids and a total count."""

    items: tuple[int, ...]
    total: int


@dataclass(frozen=True)
class FacetCount:
    """A single facet bucket (e.g. one category)."""

    name: str
    count: int


@dataclass(frozen=True)
class PriceRange:
    """Lowest and highest price under the current filters."""

    min: float = 0.0
    max: float = 10_000.0


@dataclass(frozen=True)
class FacetSet:
    """Aggregates used to render search filter widgets."""

    categories: tuple[FacetCount, ...] = ()
    price_range: PriceRange = field(default_factory=PriceRange)
    conditions: tuple[FacetCount, ...] = ()


@dataclass(frozen=True)
class SearchResult:
    """A page of ranked product ids plus paging and provenance data."""

    items: tuple[int, ...]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool
    source: ResultSource
    took_ms: float = 0.0
    facets: FacetSet | None = None

    @property
    def is_empty(self) -> bool:
        """True when the page carries no items."""
        return not self.items
