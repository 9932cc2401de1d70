"""Builders shared by the test modules."""
from bson import ObjectId

from schemas import CartLineItem


def line(price, qty, name="Item"):
    """Build a cart line item for pricing tests."""
    return CartLineItem(
        item_id=str(ObjectId()),
        product_id=str(ObjectId()),
        name=name,
        unit_price=price,
        quantity=qty,
        size="M",
        color="black",
    )
