# search_gateway/executors/index_executor.py

"""Primary executor: the Meilisearch full-text index over HTTP."""

import json
from typing import Any, cast

from curl_cffi import requests as curl_requests
from curl_cffi.requests.exceptions import RequestException, Timeout

from search_gateway.executors.base_executor import QueryExecutor
from search_gateway.filters.sort_order import sort_directives
from search_gateway.models.errors import (
    ExecutorFailure,
    ExecutorTimeout,
    ExecutorUnavailable,
    InvalidFilter,
)
from search_gateway.models.product import CatalogProduct
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import RawResult

# Sort directive field -> index attribute
_INDEX_FIELDS: dict[str, str] = {
    "price": "price",
    "created_at": "createdAt",
    "views": "views",
}

_VISIBLE = ["isActive = true", "isSold = false"]


def _quote(value: str) -> str:
    """Quote a string for a filter expression, escaping quotes."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_filter(query: NormalizedQuery) -> list[str]:
    """Render normalized filters as index filter expressions (ANDed)."""
    f = query.filters
    expressions = list(_VISIBLE)
    if f.category is not None:
        expressions.append(f"category = {_quote(f.category)}")
    if f.min_price is not None:
        expressions.append(f"price >= {f.min_price}")
    if f.max_price is not None:
        expressions.append(f"price <= {f.max_price}")
    if f.condition is not None:
        expressions.append(f"condition = {_quote(f.condition)}")
    if f.tags:
        quoted = ", ".join(_quote(t) for t in f.tags)
        expressions.append(f"tags IN [{quoted}]")
    if f.owner_id is not None:
        expressions.append(f"ownerId = {f.owner_id}")
    if f.in_stock:
        expressions.append("stock > 0")
    if f.min_rating is not None:
        expressions.append(f"sellerRating >= {f.min_rating}")
    return expressions


def build_sort(query: NormalizedQuery) -> list[str]:
    """Render the shared sort directives; empty keeps index relevance."""
    return [
        f"{_INDEX_FIELDS[d.field]}:{d.direction}"
        for d in sort_directives(query.sort_mode)
    ]


class IndexExecutor(QueryExecutor):
    """Fast, relevance-ranked executor; may fail and is breaker-gated."""

    def __init__(
        self,
        host: str | None = None,
        api_key: str | None = None,
        index_uid: str | None = None,
    ) -> None:
        super().__init__("index")
        self.host = (host or self.settings.INDEX_HOST).rstrip("/")
        self.api_key = (
            api_key if api_key is not None else self.settings.INDEX_API_KEY
        )
        self.index_uid = index_uid or self.settings.INDEX_UID
        self.session = curl_requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        payload: Any = None,
    ) -> curl_requests.Response:
        """Send one request; map transport errors onto executor failures."""
        url = f"{self.host}{path}"
        try:
            if method == "GET":
                return self.session.get(
                    url, headers=self._headers(), timeout=timeout,
                )
            return self.session.post(
                url,
                headers=self._headers(),
                json=payload,
                timeout=timeout,
            )
        except Timeout as exc:
            raise ExecutorTimeout(
                self.name, f"{method} {path} timed out after {timeout}s"
            ) from exc
        except RequestException as exc:
            raise ExecutorUnavailable(
                self.name, f"{method} {path} failed: {exc}"
            ) from exc

    @staticmethod
    def _error_code(resp: curl_requests.Response) -> str:
        """The ``code`` field of an error body, or "" if there is none."""
        try:
            return str(resp.json().get("code", ""))
        except (json.JSONDecodeError, ValueError, AttributeError):
            return ""

    def _decode(self, resp: curl_requests.Response) -> dict[str, Any]:
        """Check status and parse the JSON body."""
        if resp.status_code == 400:
            code = self._error_code(resp)
            if "filter" in code or "sort" in code:
                raise InvalidFilter(self.name, f"rejected query: {code}")
        if resp.status_code not in (200, 202):
            raise ExecutorUnavailable(
                self.name, f"HTTP {resp.status_code}"
            )
        try:
            body = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ExecutorUnavailable(
                self.name, "malformed JSON response"
            ) from exc
        if not isinstance(body, dict):
            raise ExecutorUnavailable(self.name, "unexpected response shape")
        return cast(dict[str, Any], body)

    # ── Queries ──────────────────────────────────────────

    def search(
        self, query: NormalizedQuery, timeout: float,
    ) -> RawResult:
        payload: dict[str, Any] = {
            "q": query.text,
            "offset": query.offset,
            "limit": query.page_size,
            "filter": build_filter(query),
            "attributesToRetrieve": ["id"],
        }
        sort = build_sort(query)
        if sort:
            payload["sort"] = sort

        resp = self._request(
            "POST", f"/indexes/{self.index_uid}/search", timeout, payload,
        )
        body = self._decode(resp)
        try:
            items = tuple(int(hit["id"]) for hit in body.get("hits", []))
            total = int(
                body.get("estimatedTotalHits", body.get("totalHits", 0))
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ExecutorUnavailable(
                self.name, f"malformed hits: {exc}"
            ) from exc

        self.logger.debug(
            "Index search '%s' -> %d/%d (%sms engine time)",
            query.text,
            len(items),
            total,
            body.get("processingTimeMs", "?"),
        )
        return RawResult(items=items, total=total)

    def suggest(
        self, prefix: str, limit: int, timeout: float,
    ) -> list[str]:
        payload = {
            "q": prefix,
            "limit": limit * 2,  # headroom for duplicate titles
            "filter": list(_VISIBLE),
            "attributesToRetrieve": ["title"],
        }
        resp = self._request(
            "POST", f"/indexes/{self.index_uid}/search", timeout, payload,
        )
        body = self._decode(resp)
        seen: dict[str, None] = {}
        for hit in body.get("hits", []):
            title = hit.get("title") if isinstance(hit, dict) else None
            if title:
                seen.setdefault(str(title), None)
        return list(seen)[:limit]

    def ping(self) -> bool:
        try:
            resp = self._request("GET", "/health", timeout=2.0)
            body = self._decode(resp)
        except ExecutorFailure:
            return False
        return body.get("status") == "available"

    def close(self) -> None:
        self.session.close()

    # ── Indexing ─────────────────────────────────────────

    def index_products(
        self,
        products: list[CatalogProduct],
        timeout: float = 30.0,
    ) -> int:
        """Push catalog listings into the index in fixed-size batches.

        Returns the number of documents submitted. Raises
        :class:`ExecutorFailure` on the first rejected batch.
        """
        batch_size = self.settings.INDEX_BATCH_SIZE
        submitted = 0
        for start in range(0, len(products), batch_size):
            batch = products[start:start + batch_size]
            resp = self._request(
                "POST",
                f"/indexes/{self.index_uid}/documents?primaryKey=id",
                timeout,
                [p.to_index_document() for p in batch],
            )
            self._decode(resp)
            submitted += len(batch)
            self.logger.info(
                "Submitted batch of %d documents (%d/%d)",
                len(batch),
                submitted,
                len(products),
            )
        return submitted
