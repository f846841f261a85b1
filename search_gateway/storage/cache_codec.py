# search_gateway/storage/cache_codec.py

"""JSON encoding of cacheable values for out-of-process cache backends."""

import json
from typing import Any

from search_gateway.models.result import (
    FacetCount,
    FacetSet,
    PriceRange,
    ResultSource,
    SearchResult,
)


def _facets_to_dict(facets: FacetSet) -> dict[str, Any]:
    return {
        "categories": [[c.name, c.count] for c in facets.categories],
        "price_range": [facets.price_range.min, facets.price_range.max],
        "conditions": [[c.name, c.count] for c in facets.conditions],
    }


def _facets_from_dict(data: dict[str, Any]) -> FacetSet:
    low, high = data["price_range"]
    return FacetSet(
        categories=tuple(
            FacetCount(name=str(n), count=int(c))
            for n, c in data["categories"]
        ),
        price_range=PriceRange(min=float(low), max=float(high)),
        conditions=tuple(
            FacetCount(name=str(n), count=int(c))
            for n, c in data["conditions"]
        ),
    )


def encode_value(value: Any) -> str:
    """Serialise a search result, facet set or string sequence."""
    if isinstance(value, SearchResult):
        payload: dict[str, Any] = {
            "kind": "search_result",
            "items": list(value.items),
            "total": value.total,
            "page": value.page,
            "page_size": value.page_size,
            "total_pages": value.total_pages,
            "has_more": value.has_more,
            "source": value.source.value,
            "took_ms": value.took_ms,
            "facets": (
                _facets_to_dict(value.facets)
                if value.facets is not None
                else None
            ),
        }
    elif isinstance(value, FacetSet):
        payload = {"kind": "facets", **_facets_to_dict(value)}
    elif isinstance(value, (list, tuple)) and all(
        isinstance(v, str) for v in value
    ):
        payload = {"kind": "strings", "values": list(value)}
    else:
        msg = f"Unsupported cache value type: {type(value).__name__}"
        raise TypeError(msg)
    return json.dumps(payload, separators=(",", ":"))


def decode_value(raw: str | bytes) -> Any:
    """Inverse of :func:`encode_value`. Raises ``ValueError`` on junk."""
    data: dict[str, Any] = json.loads(raw)
    kind = data.get("kind")
    if kind == "search_result":
        facets = data.get("facets")
        return SearchResult(
            items=tuple(int(i) for i in data["items"]),
            total=int(data["total"]),
            page=int(data["page"]),
            page_size=int(data["page_size"]),
            total_pages=int(data["total_pages"]),
            has_more=bool(data["has_more"]),
            source=ResultSource(data["source"]),
            took_ms=float(data["took_ms"]),
            facets=_facets_from_dict(facets) if facets else None,
        )
    if kind == "facets":
        return _facets_from_dict(data)
    if kind == "strings":
        return tuple(str(v) for v in data["values"])
    msg = f"Unknown cache payload kind: {kind!r}"
    raise ValueError(msg)
