"""Per-user cart persisted in the ``cart`` collection."""
import logging
import uuid
from typing import Any, Dict, List

from pymongo.database import Database

from database import utcnow
from errors import CartItemNotFoundError, ValidationError
from schemas import CartLineItem

logger = logging.getLogger(__name__)


class CartStore:
    """Source of line items for pricing and order submission."""

    collection = "cart"

    def __init__(self, db: Database, user_id: str):
        self.db = db
        self.user_id = user_id

    def _load(self) -> Dict[str, Any]:
        doc = self.db[self.collection].find_one({"user_id": self.user_id})
        if doc is None:
            doc = {"user_id": self.user_id, "items": [], "created_at": utcnow(), "updated_at": utcnow()}
            self.db[self.collection].insert_one(doc)
        return doc

    def _save(self, items: List[Dict[str, Any]]) -> None:
        self.db[self.collection].update_one(
            {"user_id": self.user_id},
            {"$set": {"items": items, "updated_at": utcnow()}},
            upsert=True,
        )

    def items(self) -> List[CartLineItem]:
        return [CartLineItem(**item) for item in self._load().get("items", [])]

    def to_api(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "items": [item.to_api() for item in self.items()]}

    def add(self, product: Dict[str, Any], quantity: int, size: str, color: str) -> List[CartLineItem]:
        """Add a product variant. Identical product/size/color lines are merged."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")
        sizes = product.get("sizes") or []
        if sizes and size not in sizes:
            raise ValidationError(f"Size {size} is not available", field="size")
        colors = product.get("colors") or []
        if colors and color not in colors:
            raise ValidationError(f"Color {color} is not available", field="color")
        if not product.get("in_stock", True):
            raise ValidationError(f"{product.get('title', 'Product')} is out of stock")

        product_id = str(product["_id"])
        items = self._load().get("items", [])
        for item in items:
            if item["product_id"] == product_id and item["size"] == size and item["color"] == color:
                item["quantity"] += quantity
                break
        else:
            images = product.get("images") or []
            items.append(CartLineItem(
                item_id=uuid.uuid4().hex,
                product_id=product_id,
                name=product.get("title", "Product"),
                unit_price=float(product.get("price", 0)),
                quantity=quantity,
                size=size,
                color=color,
                image=str(images[0]) if images else None,
            ).model_dump())

        self._save(items)
        return [CartLineItem(**item) for item in items]

    def update(self, item_id: str, quantity: int) -> List[CartLineItem]:
        """Set a line's quantity; zero or less removes the line."""
        items = self._load().get("items", [])
        index = next((i for i, item in enumerate(items) if item["item_id"] == item_id), None)
        if index is None:
            raise CartItemNotFoundError(item_id)

        if quantity <= 0:
            items.pop(index)
        else:
            items[index]["quantity"] = quantity

        self._save(items)
        return [CartLineItem(**item) for item in items]

    def remove(self, item_id: str) -> List[CartLineItem]:
        items = self._load().get("items", [])
        remaining = [item for item in items if item["item_id"] != item_id]
        if len(remaining) == len(items):
            raise CartItemNotFoundError(item_id)
        self._save(remaining)
        return [CartLineItem(**item) for item in remaining]

    def clear(self) -> None:
        self._save([])
        logger.debug("Cleared cart for user %s", self.user_id)
