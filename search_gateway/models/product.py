# search_gateway/models/product.py

"""Catalog product document shared by the catalog store and the index."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CatalogProduct:
    """Represents a single marketplace listing."""

    id: int
    title: str
    price: float
    description: str = ""
    category: str = ""
    condition: str = ""
    tags: list[str] = field(default_factory=lambda: list[str]())
    original_price: float = 0.0
    owner_id: int | None = None
    stock: int = 0
    seller_rating: float = 0.0
    views: int = 0
    is_active: bool = True
    is_sold: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def discount(self) -> int:
        """Whole-percent discount from the original price."""
        if self.original_price <= 0:
            return 0
        return round(
            (self.original_price - self.price)
            / self.original_price
            * 100
        )

    def to_index_document(self) -> dict[str, object]:
        """Serialise to the field names the search index expects."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "condition": self.condition,
            "tags": [t.lower() for t in self.tags],
            "price": self.price,
            "originalPrice": self.original_price,
            "discount": self.discount,
            "ownerId": self.owner_id,
            "stock": self.stock,
            "sellerRating": self.seller_rating,
            "views": self.views,
            "isActive": self.is_active,
            "isSold": self.is_sold,
            "createdAt": int(self.created_at.timestamp()),
        }
