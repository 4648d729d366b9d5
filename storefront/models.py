from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

ProductId = Union[int, str]


@dataclass
class CartItem:
    id: ProductId
    name: str
    image: Optional[str]
    price: float
    quantity: int  # всегда >= 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Product:
    id: ProductId
    name: str
    price: float
    category: str
    description: str = ""
    images: Tuple[str, ...] = field(default_factory=tuple)
    last_updated: Optional[datetime] = None  # None у локальных товаров

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category,
            "description": self.description,
            "images": list(self.images),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class AggregateResult:
    categories: Tuple[str, ...]
    products: Tuple[Product, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categories": list(self.categories),
            "products": [p.to_dict() for p in self.products],
        }
