"""
Shop capability: product catalogue commands.
"""

import itertools
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cmdengine.core.actions import FunctionAction
from cmdengine.core.capabilities import Capability
from cmdengine.core.schema import FieldKind, FieldSpec
from cmdengine.core.types import Result
from cmdengine.engine.matcher import PatternRule

logger = logging.getLogger(__name__)


@dataclass
class Product:
    id: int
    name: str
    price: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "created_at": self.created_at.isoformat(),
        }


class ProductRepository:
    """In-memory product storage."""

    def __init__(self) -> None:
        self._products: dict[int, Product] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, name: str, price: float) -> Product:
        with self._lock:
            product = Product(id=next(self._ids), name=name, price=round(price, 2))
            self._products[product.id] = product
        logger.debug(f"Created product {product.id}: {name}")
        return product

    def list_all(self) -> list[Product]:
        return list(self._products.values())

    def get(self, product_id: int) -> Product | None:
        return self._products.get(product_id)


CREATE_PRODUCT_SCHEMA = (
    FieldSpec("name", FieldKind.STRING, required=True, max_length=200, description="Product name"),
    FieldSpec("price", FieldKind.NUMBER, required=True, min_value=0, description="Price in store currency"),
)


def _extract_product(match: re.Match) -> dict[str, Any]:
    return {"name": match.group(1).strip(), "price": float(match.group(2))}


PATTERN_RULES = [
    PatternRule(
        r"(?:create|add)\s+(?:a\s+)?product\s+(?:named|called)\s+(.+)\s+for\s+\$?(\d+(?:\.\d+)?)\s*$",
        "shop.create_product",
        extract=_extract_product,
    ),
    PatternRule(r"(?:list|show)\s+(?:all\s+|the\s+)?products\s*$", "shop.list_products"),
]


class ShopModule:
    """Wires the shop actions to a product repository."""

    def __init__(self, products: ProductRepository, base_url: str = ""):
        self.products = products
        self.base_url = base_url.rstrip("/")

    def create_product(self, payload: dict[str, Any]) -> Result:
        product = self.products.create(payload["name"], payload["price"])
        return Result.ok(
            f"Created product '{product.name}' for {product.price:.2f}",
            data={"product_id": product.id, "name": product.name, "price": product.price},
            actions={"View product": f"{self.base_url}/products/{product.id}"},
        )

    def list_products(self, payload: dict[str, Any]) -> Result:
        products = self.products.list_all()
        return Result.ok(
            f"{len(products)} product(s)",
            data={"products": [p.to_dict() for p in products]},
        )

    def capability(self) -> Capability:
        return Capability(
            name="shop",
            description="Product catalogue",
            feature_flag="shop",
            actions=(
                FunctionAction(
                    name="shop.create_product",
                    description="Create a product with a name and a price",
                    handler=self.create_product,
                    payload_schema=CREATE_PRODUCT_SCHEMA,
                    permission="products.create",
                ),
                FunctionAction(
                    name="shop.list_products",
                    description="List products in the catalogue",
                    handler=self.list_products,
                ),
            ),
        )

    def rules(self) -> list[PatternRule]:
        return list(PATTERN_RULES)

    def context_providers(self) -> list:
        return []
