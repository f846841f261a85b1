# search_gateway/models/query.py

"""Query value types: caller input and the normalized form."""

from dataclasses import dataclass
from enum import Enum


class SortMode(str, Enum):
    """Result ordering requested by the caller."""

    RELEVANCE = "relevance"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NEWEST = "newest"
    POPULAR = "popular"


@dataclass(frozen=True)
class SearchFilters:
    """Structured filters as supplied by the caller (not yet normalized)."""

    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    condition: str | None = None
    tags: tuple[str, ...] | list[str] | None = None
    owner_id: int | None = None
    in_stock: bool | None = None
    min_rating: float | None = None


@dataclass(frozen=True)
class SearchOptions:
    """Paging, sorting and caching options for a single search."""

    page: int = 1
    page_size: int = 20
    sort_mode: SortMode | str = SortMode.RELEVANCE
    cacheable: bool = True
    include_facets: bool = False


@dataclass(frozen=True)
class NormalizedFilters:
    """Canonical filter values; equal filters compare equal field-wise."""

    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    condition: str | None = None
    tags: tuple[str, ...] = ()
    owner_id: int | None = None
    in_stock: bool | None = None
    min_rating: float | None = None


@dataclass(frozen=True)
class NormalizedQuery:
    """Immutable, validated query handed to the executors.

    Two instances with identical field values always produce the same
    cache key.
    """

    text: str
    filters: NormalizedFilters
    page: int
    page_size: int
    sort_mode: SortMode

    @property
    def offset(self) -> int:
        """Zero-based index of the first item on this page."""
        return (self.page - 1) * self.page_size
