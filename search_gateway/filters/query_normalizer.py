# search_gateway/filters/query_normalizer.py

"""Validation, normalization and cache-key derivation for queries.

Validation rejects anything the executors should never see; the
normalizer then produces a canonical :class:`NormalizedQuery` so that
equivalent requests (different casing, tag order, stray whitespace)
share one cache entry and one in-flight upstream call.
"""

import hashlib
import json
import logging
from dataclasses import asdict

from search_gateway.config.settings import Settings
from search_gateway.models.errors import ValidationError
from search_gateway.models.query import (
    NormalizedFilters,
    NormalizedQuery,
    SearchFilters,
    SearchOptions,
    SortMode,
)

logger = logging.getLogger("search_gateway.normalizer")

SEARCH_KEY_PREFIX = "search:"
FACET_KEY_PREFIX = "facets:"
AUTOCOMPLETE_KEY_PREFIX = "autocomplete:"
TRENDING_KEY_PREFIX = "trending:"


# ── Validation ───────────────────────────────────────────


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_sort_mode(value: SortMode | str) -> SortMode:
    """Accept a :class:`SortMode` or its string value."""
    if isinstance(value, SortMode):
        return value
    try:
        return SortMode(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in SortMode)
        raise ValidationError(
            "sort_mode", f"unknown sort mode {value!r} (valid: {valid})"
        ) from None


def validate_search_input(
    text: str | None,
    filters: SearchFilters,
    options: SearchOptions,
    settings: Settings | None = None,
) -> None:
    """Raise :class:`ValidationError` for malformed input."""
    cfg = settings or Settings()

    if text is not None and not isinstance(text, str):
        raise ValidationError("text", "must be a string")
    if text is not None and len(text) > cfg.MAX_QUERY_LENGTH:
        raise ValidationError(
            "text",
            f"query too long (max {cfg.MAX_QUERY_LENGTH} characters)",
        )

    if not _is_int(options.page) or not (
        1 <= options.page <= cfg.MAX_PAGE
    ):
        raise ValidationError(
            "page", f"must be between 1 and {cfg.MAX_PAGE}"
        )

    if not _is_int(options.page_size) or not (
        1 <= options.page_size <= cfg.MAX_PAGE_SIZE
    ):
        raise ValidationError(
            "page_size", f"must be between 1 and {cfg.MAX_PAGE_SIZE}"
        )

    for name in ("category", "condition"):
        value = getattr(filters, name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(name, "must be a string")

    # A bare string would otherwise be iterated character by character
    if filters.tags is not None and (
        not isinstance(filters.tags, (list, tuple))
        or not all(isinstance(t, str) for t in filters.tags)
    ):
        raise ValidationError("tags", "must be a list of strings")

    for name in ("min_price", "max_price"):
        value = getattr(filters, name)
        if value is None:
            continue
        if not _is_number(value) or value < 0:
            raise ValidationError(name, "must be a non-negative number")

    if (
        filters.min_price is not None
        and filters.max_price is not None
        and filters.min_price > filters.max_price
    ):
        raise ValidationError(
            "min_price", "price range is inverted (min_price > max_price)"
        )

    if filters.min_rating is not None and (
        not _is_number(filters.min_rating)
        or not (0 <= filters.min_rating <= cfg.MAX_RATING)
    ):
        raise ValidationError(
            "min_rating", f"must be between 0 and {cfg.MAX_RATING}"
        )

    if filters.owner_id is not None and (
        not _is_int(filters.owner_id) or filters.owner_id < 1
    ):
        raise ValidationError("owner_id", "must be a positive integer")

    parse_sort_mode(options.sort_mode)


# ── Normalization ────────────────────────────────────────


def normalize_text(text: str | None) -> str:
    """Trim, lower-case and collapse internal whitespace."""
    if not text:
        return ""
    return " ".join(text.split()).lower()


def _normalize_label(value: str | None) -> str | None:
    cleaned = normalize_text(value)
    return cleaned or None


def normalize_filters(filters: SearchFilters) -> NormalizedFilters:
    """Canonicalise filter values without changing their meaning."""
    tags = tuple(
        sorted({
            t for t in (normalize_text(raw) for raw in filters.tags or ())
            if t
        })
    )
    return NormalizedFilters(
        category=_normalize_label(filters.category),
        min_price=(
            float(filters.min_price)
            if filters.min_price is not None
            else None
        ),
        max_price=(
            float(filters.max_price)
            if filters.max_price is not None
            else None
        ),
        condition=_normalize_label(filters.condition),
        tags=tags,
        owner_id=filters.owner_id,
        # Only "in stock" narrows results; False means no filter.
        in_stock=True if filters.in_stock else None,
        min_rating=(
            float(filters.min_rating)
            if filters.min_rating is not None
            else None
        ),
    )


def normalize_query(
    text: str | None,
    filters: SearchFilters | None = None,
    options: SearchOptions | None = None,
    settings: Settings | None = None,
) -> NormalizedQuery:
    """Validate caller input and return its canonical form."""
    raw_filters = filters or SearchFilters()
    raw_options = options or SearchOptions()
    try:
        validate_search_input(text, raw_filters, raw_options, settings)
    except ValidationError as exc:
        logger.info("Rejected query %r: %s", str(text or "")[:80], exc)
        raise

    return NormalizedQuery(
        text=normalize_text(text),
        filters=normalize_filters(raw_filters),
        page=raw_options.page,
        page_size=raw_options.page_size,
        sort_mode=parse_sort_mode(raw_options.sort_mode),
    )


# ── Cache keys ───────────────────────────────────────────


def _digest(payload: dict[str, object]) -> str:
    canonical = json.dumps(
        payload, sort_keys=True, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def cache_key(query: NormalizedQuery) -> str:
    """Content hash of every field of a normalized query."""
    return SEARCH_KEY_PREFIX + _digest({
        "text": query.text,
        "filters": asdict(query.filters),
        "page": query.page,
        "page_size": query.page_size,
        "sort": query.sort_mode.value,
    })


def facet_cache_key(query: NormalizedQuery) -> str:
    """Content hash of the filter predicate only (no paging or sort)."""
    return FACET_KEY_PREFIX + _digest({
        "text": query.text,
        "filters": asdict(query.filters),
    })


def autocomplete_cache_key(prefix: str, limit: int) -> str:
    """Key for a normalized autocomplete prefix."""
    return f"{AUTOCOMPLETE_KEY_PREFIX}{prefix}:{limit}"


def trending_cache_key(limit: int) -> str:
    """Key for the trending list of a given length."""
    return f"{TRENDING_KEY_PREFIX}{limit}"
