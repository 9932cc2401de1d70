"""
Checkout: cart -> totals -> address -> payment -> order.

Everything runs against an explicit ``CheckoutContext`` so the workflow can be
exercised without the web layer. The cart is re-read and re-priced right
before submission; a request priced against an older cart is rejected rather
than silently ordering something else.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool

from addresses import AddressBook, AddressSelector, validate_address_fields
from cart import CartStore
from errors import CartChangedError, CouponNotFoundError, EmptyCartError, MissingAddressError, ValidationError
from orders import OrderSubmissionService
from payments import GatewayRedirect, PaymentConfirmation, PaymentResolver, method_from_request
from pricing import compute_totals, coupon_discount
from schemas import Address, AddressIn, CartLineItem, Coupon, Order, OrderRequest, OrderTotals
from settings import Settings

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.01


@dataclass
class CheckoutContext:
    db: Database
    user_id: str
    settings: Settings

    @property
    def cart(self) -> CartStore:
        return CartStore(self.db, self.user_id)

    @property
    def address_book(self) -> AddressBook:
        return AddressBook(self.db, self.user_id)


@dataclass
class PreparedOrder:
    items: List[CartLineItem]
    address: Address
    totals: OrderTotals
    coupon_code: Optional[str] = None


def find_coupon(db: Database, code: str) -> Coupon:
    doc = db["coupon"].find_one({"code": code.strip().upper(), "is_active": True})
    if not doc:
        raise CouponNotFoundError(code)
    return Coupon(**doc)


def price_cart(
    ctx: CheckoutContext,
    items: List[CartLineItem],
    coupon_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[OrderTotals, Optional[str]]:
    settings = ctx.settings
    base = compute_totals(items, settings.free_shipping_threshold, settings.flat_shipping_rate, settings.tax_rate)
    if not coupon_code:
        return base, None

    coupon = find_coupon(ctx.db, coupon_code)
    discount = coupon_discount(coupon, base.subtotal, now or datetime.now(timezone.utc))
    totals = compute_totals(
        items,
        settings.free_shipping_threshold,
        settings.flat_shipping_rate,
        settings.tax_rate,
        discount=discount,
    )
    return totals, coupon.code


def review(ctx: CheckoutContext, coupon_code: Optional[str] = None) -> Dict[str, Any]:
    items = ctx.cart.items()
    totals, code = price_cart(ctx, items, coupon_code)
    return {
        "items": [item.to_api() for item in items],
        "totals": totals.to_api(),
        "couponCode": code,
        "currency": ctx.settings.currency,
    }


def _inline_address(ctx: CheckoutContext, fields: Dict[str, Any]) -> Address:
    """Validate an address sent inline with the order; it is not saved to the address book."""
    try:
        data = AddressIn(**{k: v for k, v in fields.items() if v is not None}).model_dump()
    except PydanticValidationError as e:
        raise ValidationError("Invalid shipping address", field="shippingAddress") from e
    data["label"] = data["label"] or "Shipping"
    validate_address_fields(data)
    data["is_default"] = False
    return Address(user_id=ctx.user_id, **data)


def resolve_address(ctx: CheckoutContext, ref: Any) -> Address:
    """Address for the order: a saved address by id, an inline address, or the initial selection."""
    selector = AddressSelector.load(ctx.address_book)
    if isinstance(ref, dict):
        address_id = ref.get("id") or ref.get("_id")
        if not address_id:
            return _inline_address(ctx, ref)
        selector.select(address_id)
    elif isinstance(ref, str) and ref:
        selector.select(ref)

    if selector.selected is None:
        raise MissingAddressError()
    return selector.selected


def prepare(ctx: CheckoutContext, request: OrderRequest) -> PreparedOrder:
    """Re-read the cart, pick the address and re-price. No writes."""
    items = ctx.cart.items()
    if not items:
        raise EmptyCartError()

    address = resolve_address(ctx, request.shipping_address)

    totals, coupon_code = price_cart(ctx, items, request.coupon_code)
    if request.total is not None and abs(request.total - totals.total) > TOTAL_TOLERANCE:
        raise CartChangedError(request.total, totals.total)

    return PreparedOrder(items=items, address=address, totals=totals, coupon_code=coupon_code)


async def authorize(
    ctx: CheckoutContext, request: OrderRequest, today: Optional[date] = None
) -> Tuple[Any, PaymentConfirmation]:
    """Run the payment resolver for the method named in ``request``."""
    method = method_from_request(request.payment_method, request.card)
    resolver = PaymentResolver(method, ctx.settings)
    await resolver.start(today=today)
    if isinstance(method, GatewayRedirect):
        resolver.complete({
            "razorpay_order_id": request.razorpay_order_id,
            "razorpay_payment_id": request.razorpay_payment_id,
            "razorpay_signature": request.razorpay_signature,
        })
    return method, resolver.confirmation


def submit(ctx: CheckoutContext, prepared: PreparedOrder, method: Any, confirmation: PaymentConfirmation) -> Order:
    service = OrderSubmissionService(ctx.db, ctx.cart)
    return service.submit(
        prepared.items,
        prepared.address,
        method,
        confirmation,
        prepared.totals,
        coupon_code=prepared.coupon_code,
    )


async def place_order(ctx: CheckoutContext, request: OrderRequest, today: Optional[date] = None) -> Order:
    prepared = await run_in_threadpool(prepare, ctx, request)
    method, confirmation = await authorize(ctx, request, today=today)
    order = await run_in_threadpool(submit, ctx, prepared, method, confirmation)
    return order
