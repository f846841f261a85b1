# search_gateway/storage/catalog_db.py

"""SQLite-backed product catalog used by the fallback executor.

It also aggregates facets and popularity signals, and it is the source
of truth that gets synced into the primary search index.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from search_gateway.config.settings import Settings
from search_gateway.filters.sort_order import sort_directives
from search_gateway.models.product import CatalogProduct
from search_gateway.models.query import NormalizedQuery
from search_gateway.models.result import FacetCount, FacetSet, PriceRange

logger = logging.getLogger("search_gateway.catalog")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id             INTEGER PRIMARY KEY,
    title          TEXT    NOT NULL,
    description    TEXT    NOT NULL DEFAULT '',
    category       TEXT    NOT NULL DEFAULT '',
    item_condition TEXT    NOT NULL DEFAULT '',
    tags           TEXT    NOT NULL DEFAULT '[]',
    price          REAL    NOT NULL,
    original_price REAL    NOT NULL DEFAULT 0,
    owner_id       INTEGER,
    stock          INTEGER NOT NULL DEFAULT 0,
    seller_rating  REAL    NOT NULL DEFAULT 0,
    views          INTEGER NOT NULL DEFAULT 0,
    is_active      INTEGER NOT NULL DEFAULT 1,
    is_sold        INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_products_category
    ON products(category);
CREATE INDEX IF NOT EXISTS idx_products_price
    ON products(price);
CREATE INDEX IF NOT EXISTS idx_products_created
    ON products(created_at);
CREATE INDEX IF NOT EXISTS idx_products_views
    ON products(views);
"""

_COLUMNS = (
    "id, title, description, category, item_condition, tags, price, "
    "original_price, owner_id, stock, seller_rating, views, is_active, "
    "is_sold, created_at"
)

# Sort directive field -> column
_SORT_COLUMNS: dict[str, str] = {
    "price": "price",
    "created_at": "created_at",
    "views": "views",
}


def _like_pattern(text: str) -> str:
    """Build a ``%text%`` pattern with LIKE wildcards escaped."""
    escaped = (
        text.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
    return f"%{escaped}%"


def build_where(query: NormalizedQuery) -> tuple[str, list[Any]]:
    """Translate a normalized query into a WHERE clause and parameters.

    Only active, unsold listings are ever visible.
    """
    clauses: list[str] = ["is_active = 1", "is_sold = 0"]
    params: list[Any] = []
    f = query.filters

    if query.text:
        pattern = _like_pattern(query.text)
        clauses.append(
            "(lower(title) LIKE ? ESCAPE '\\' "
            "OR lower(description) LIKE ? ESCAPE '\\' "
            "OR lower(category) LIKE ? ESCAPE '\\' "
            "OR lower(item_condition) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern] * 4)

    if f.category is not None:
        clauses.append("lower(category) = ?")
        params.append(f.category)
    if f.min_price is not None:
        clauses.append("price >= ?")
        params.append(f.min_price)
    if f.max_price is not None:
        clauses.append("price <= ?")
        params.append(f.max_price)
    if f.condition is not None:
        clauses.append("lower(item_condition) = ?")
        params.append(f.condition)
    if f.tags:
        marks = ", ".join("?" for _ in f.tags)
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(products.tags) "
            f"WHERE lower(json_each.value) IN ({marks}))"
        )
        params.extend(f.tags)
    if f.owner_id is not None:
        clauses.append("owner_id = ?")
        params.append(f.owner_id)
    if f.in_stock:
        clauses.append("stock > 0")
    if f.min_rating is not None:
        clauses.append("seller_rating >= ?")
        params.append(f.min_rating)

    return " AND ".join(clauses), params


def build_order_by(query: NormalizedQuery) -> tuple[str, list[Any]]:
    """Render the shared sort directives as an ORDER BY clause.

    Relevance has no column of its own here; it is approximated by
    putting title matches first, newest first within each group.
    """
    directives = sort_directives(query.sort_mode)
    params: list[Any] = []
    if directives:
        parts = [
            f"{_SORT_COLUMNS[d.field]} {d.direction.upper()}"
            for d in directives
        ]
    elif query.text:
        parts = [
            "CASE WHEN lower(title) LIKE ? ESCAPE '\\' THEN 0 ELSE 1 END",
            "created_at DESC",
        ]
        params.append(_like_pattern(query.text))
    else:
        parts = ["created_at DESC"]
    parts.append("id ASC")
    return ", ".join(parts), params


def _row_to_product(row: tuple[Any, ...]) -> CatalogProduct:
    return CatalogProduct(
        id=row[0],
        title=row[1],
        description=row[2],
        category=row[3],
        condition=row[4],
        tags=cast(list[str], json.loads(row[5] or "[]")),
        price=row[6],
        original_price=row[7],
        owner_id=row[8],
        stock=row[9],
        seller_rating=row[10],
        views=row[11],
        is_active=bool(row[12]),
        is_sold=bool(row[13]),
        created_at=datetime.fromisoformat(row[14]),
    )


class CatalogDB:
    """SQLite-backed store for marketplace listings."""

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.CATALOG_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("CatalogDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            return False
        return True

    # ── Writing ──────────────────────────────────────────

    def add_products(self, products: list[CatalogProduct]) -> int:
        """Insert or update listings by id. Returns the count written."""
        rows = [
            (
                p.id,
                p.title,
                p.description,
                p.category,
                p.condition,
                json.dumps(p.tags),
                p.price,
                p.original_price,
                p.owner_id,
                p.stock,
                p.seller_rating,
                p.views,
                int(p.is_active),
                int(p.is_sold),
                p.created_at.isoformat(),
            )
            for p in products
        ]
        with self._lock:
            self._conn.executemany(
                f"INSERT INTO products ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET "
                "title=excluded.title, "
                "description=excluded.description, "
                "category=excluded.category, "
                "item_condition=excluded.item_condition, "
                "tags=excluded.tags, "
                "price=excluded.price, "
                "original_price=excluded.original_price, "
                "owner_id=excluded.owner_id, "
                "stock=excluded.stock, "
                "seller_rating=excluded.seller_rating, "
                "views=excluded.views, "
                "is_active=excluded.is_active, "
                "is_sold=excluded.is_sold, "
                "created_at=excluded.created_at",
                rows,
            )
            self._conn.commit()
        if rows:
            logger.info("Upserted %d catalog products", len(rows))
        return len(rows)

    def import_json_file(self, filepath: Path) -> int:
        """Load listings from a JSON array of objects.

        Rows without a numeric id, a title, or a price are skipped.
        Returns the number of listings written.
        """
        try:
            with open(filepath, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read %s: %s", filepath.name, exc)
            return 0

        if not isinstance(data, list):
            logger.warning("%s is not a JSON array", filepath.name)
            return 0

        items: list[object] = cast(list[object], data)
        products: list[CatalogProduct] = []
        for row in items:
            if not isinstance(row, dict):
                continue
            entry = cast(dict[str, Any], row)
            try:
                created = entry.get("created_at")
                products.append(CatalogProduct(
                    id=int(entry["id"]),
                    title=str(entry["title"]),
                    price=float(entry["price"]),
                    description=str(entry.get("description", "")),
                    category=str(entry.get("category", "")),
                    condition=str(entry.get("condition", "")),
                    tags=[str(t) for t in entry.get("tags", [])],
                    original_price=float(
                        entry.get("original_price", 0) or 0
                    ),
                    owner_id=(
                        int(entry["owner_id"])
                        if entry.get("owner_id") is not None
                        else None
                    ),
                    stock=int(entry.get("stock", 0) or 0),
                    seller_rating=float(
                        entry.get("seller_rating", 0) or 0
                    ),
                    views=int(entry.get("views", 0) or 0),
                    is_active=bool(entry.get("is_active", True)),
                    is_sold=bool(entry.get("is_sold", False)),
                    created_at=(
                        datetime.fromisoformat(str(created))
                        if created
                        else datetime.now()
                    ),
                ))
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed row %r: %s", row, exc)
        return self.add_products(products)

    # ── Querying ─────────────────────────────────────────

    def search(self, query: NormalizedQuery) -> tuple[list[int], int]:
        """Return one page of matching ids (ranked) and the total count."""
        where, params = build_where(query)
        order_by, order_params = build_order_by(query)
        with self._lock:
            total: int = self._conn.execute(
                f"SELECT COUNT(*) FROM products WHERE {where}",
                params,
            ).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT id FROM products WHERE {where} "
                f"ORDER BY {order_by} LIMIT ? OFFSET ?",
                [*params, *order_params, query.page_size, query.offset],
            ).fetchall()
        return [r[0] for r in rows], total

    def suggest_titles(self, prefix: str, limit: int) -> list[str]:
        """Most viewed distinct titles containing ``prefix``."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT title FROM products "
                "WHERE is_active = 1 AND is_sold = 0 "
                "AND lower(title) LIKE ? ESCAPE '\\' "
                "ORDER BY views DESC, id ASC LIMIT ?",
                (_like_pattern(prefix.lower()), limit * 2),
            ).fetchall()
        seen: dict[str, None] = {}
        for (title,) in rows:
            seen.setdefault(title, None)
        return list(seen)[:limit]

    def aggregate_facets(self, query: NormalizedQuery) -> FacetSet:
        """Category, price-range and condition counts for a query.

        Pagination and sort are irrelevant here.
        """
        where, params = build_where(query)
        with self._lock:
            categories = self._conn.execute(
                f"SELECT category, COUNT(*) FROM products "
                f"WHERE {where} AND category != '' "
                "GROUP BY category ORDER BY COUNT(*) DESC, category",
                params,
            ).fetchall()
            price_row = self._conn.execute(
                f"SELECT MIN(price), MAX(price) FROM products "
                f"WHERE {where}",
                params,
            ).fetchone()
            conditions = self._conn.execute(
                f"SELECT item_condition, COUNT(*) FROM products "
                f"WHERE {where} AND item_condition != '' "
                "GROUP BY item_condition "
                "ORDER BY COUNT(*) DESC, item_condition",
                params,
            ).fetchall()

        # MIN/MAX are NULL when nothing matches
        price_range = PriceRange()
        if price_row is not None and price_row[0] is not None:
            price_range = PriceRange(
                min=float(price_row[0]), max=float(price_row[1]),
            )
        return FacetSet(
            categories=tuple(
                FacetCount(name=name, count=count)
                for name, count in categories
            ),
            price_range=price_range,
            conditions=tuple(
                FacetCount(name=name, count=count)
                for name, count in conditions
            ),
        )

    def trending_terms(self, limit: int) -> list[str]:
        """Titles then categories of the most viewed listings."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT title, category FROM products "
                "WHERE is_active = 1 AND is_sold = 0 "
                "ORDER BY views DESC, id ASC LIMIT ?",
                (limit,),
            ).fetchall()
        ordered: dict[str, None] = {}
        for title, _ in rows:
            ordered.setdefault(title, None)
        for _, category in rows:
            if category:
                ordered.setdefault(category, None)
        return list(ordered)[:limit]

    def all_products(self) -> list[CatalogProduct]:
        """Every listing, active or not, ordered by id."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM products ORDER BY id"
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def get_products(self, ids: list[int]) -> dict[int, CatalogProduct]:
        """Look up listings by id; unknown ids are simply absent."""
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM products "
                f"WHERE id IN ({placeholders})",
                list(ids),
            ).fetchall()
        return {r[0]: _row_to_product(r) for r in rows}

    def count(self) -> int:
        """Number of stored listings."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM products"
            ).fetchone()
        return int(row[0])
