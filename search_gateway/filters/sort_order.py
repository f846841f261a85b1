# search_gateway/filters/sort_order.py

"""Executor-neutral sort directives.

Both executors render the same directives into their own dialect, so
falling back from the index to the catalog mid-incident never changes
what "newest" or "popular" means.
"""

from dataclasses import dataclass
from typing import Literal

from search_gateway.models.query import SortMode

Direction = Literal["asc", "desc"]


@dataclass(frozen=True)
class SortDirective:
    """Order by ``field`` in ``direction``."""

    field: str
    direction: Direction


_DIRECTIVES: dict[SortMode, tuple[SortDirective, ...]] = {
    # Empty means "the engine's own relevance ranking".
    SortMode.RELEVANCE: (),
    SortMode.PRICE_ASC: (SortDirective("price", "asc"),),
    SortMode.PRICE_DESC: (SortDirective("price", "desc"),),
    SortMode.NEWEST: (SortDirective("created_at", "desc"),),
    SortMode.POPULAR: (
        SortDirective("views", "desc"),
        SortDirective("created_at", "desc"),
    ),
}


def sort_directives(mode: SortMode) -> tuple[SortDirective, ...]:
    """Map a sort mode to its ordered list of directives."""
    return _DIRECTIVES[mode]
