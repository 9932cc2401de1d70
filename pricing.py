"""
Order pricing: subtotal, shipping, tax, discount and total for a list of line items.
"""
from datetime import datetime
from typing import Iterable, Optional

from errors import CouponError
from schemas import CartLineItem, Coupon, OrderTotals


def _money(value: float) -> float:
    return round(value, 2)


def compute_totals(
    items: Iterable[CartLineItem],
    free_shipping_threshold: float,
    flat_shipping_rate: float,
    tax_rate: float,
    discount: float = 0.0,
) -> OrderTotals:
    """Price a cart. Pure: no I/O, same inputs give the same totals.

    Shipping is free once the subtotal reaches the threshold, an empty cart
    ships for nothing, and the total is clamped at zero when the discount
    exceeds everything else.
    """
    items = list(items)
    subtotal = sum(item.unit_price * item.quantity for item in items)

    if not items or subtotal >= free_shipping_threshold:
        shipping = 0.0
    else:
        shipping = flat_shipping_rate

    tax = subtotal * tax_rate
    discount = max(discount or 0.0, 0.0)
    total = max(subtotal + shipping + tax - discount, 0.0)

    return OrderTotals(
        subtotal=_money(subtotal),
        shipping=_money(shipping),
        tax=_money(tax),
        discount=_money(discount),
        total=_money(total),
    )


def coupon_discount(coupon: Optional[Coupon], subtotal: float, now: datetime) -> float:
    """Discount granted by ``coupon`` on ``subtotal``, or CouponError."""
    if coupon is None or not coupon.is_active:
        raise CouponError("Invalid coupon code")

    if now < _aware_like(coupon.valid_from, now) or now > _aware_like(coupon.valid_until, now):
        raise CouponError("Coupon has expired")

    if coupon.usage_limit and coupon.used_count >= coupon.usage_limit:
        raise CouponError("Coupon usage limit reached")

    if coupon.min_purchase and subtotal < coupon.min_purchase:
        raise CouponError(f"Minimum purchase of {coupon.min_purchase:.2f} required")

    if coupon.discount_type == "percentage":
        discount = subtotal * coupon.discount_value / 100
        if coupon.max_discount:
            discount = min(discount, coupon.max_discount)
    else:
        discount = min(coupon.discount_value, subtotal)

    return _money(discount)


def _aware_like(value: datetime, reference: datetime) -> datetime:
    # Mongo hands back naive UTC datetimes
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    return value
