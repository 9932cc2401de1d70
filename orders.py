"""
Order submission and order history.

``OrderSubmissionService.submit`` is the single place an order record is
created. The order document is the success signal: once it is written, the
cart clear and coupon bookkeeping that follow are best effort and only logged
when they fail.
"""
import logging
import random
import string
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from pymongo.database import Database
from pymongo.errors import PyMongoError

from cart import CartStore
from database import create_document, ensure_object_id, get_documents, to_str_id, utcnow
from errors import (
    EmptyCartError,
    InvalidStatusTransitionError,
    MissingAddressError,
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentNotConfirmedError,
    ValidationError,
)
from payments import CashOnDelivery, DirectCard, GatewayRedirect, PaymentConfirmation
from schemas import Address, CartLineItem, Order, OrderTotals

logger = logging.getLogger(__name__)

COLLECTION = "order"

STATUS_TRANSITIONS: Dict[str, tuple] = {
    "pending": ("confirmed", "processing", "cancelled"),
    "confirmed": ("processing", "shipped", "cancelled"),
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered",),
    "delivered": (),
    "cancelled": (),
}

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_rng = random.SystemRandom()


def generate_order_number() -> str:
    """``ORD-<epoch ms>-<9 random chars>``."""
    suffix = "".join(_rng.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class OrderSubmissionService:
    def __init__(self, db: Database, cart: CartStore):
        self.db = db
        self.cart = cart

    def submit(
        self,
        items: Sequence[CartLineItem],
        address: Optional[Address],
        payment_method: Union[GatewayRedirect, DirectCard, CashOnDelivery],
        confirmation: Optional[PaymentConfirmation],
        totals: OrderTotals,
        coupon_code: Optional[str] = None,
    ) -> Order:
        if not items:
            raise EmptyCartError()
        if address is None:
            raise MissingAddressError()
        if isinstance(payment_method, GatewayRedirect):
            if confirmation is None or confirmation.kind != "razorpay" or not confirmation.has_gateway_identifiers:
                raise PaymentNotConfirmedError()
        elif isinstance(payment_method, DirectCard):
            if confirmation is None or confirmation.kind != "card":
                raise PaymentNotConfirmedError("Card payment was not authorized")

        payment_fields: Dict[str, Any] = {}
        if confirmation is not None and confirmation.kind == payment_method.kind:
            payment_fields = confirmation.order_fields()

        order = Order(
            user_id=self.cart.user_id,
            order_number=generate_order_number(),
            # Snapshots: copies, not references to the cart or the address book
            items=[item.model_copy(deep=True) for item in items],
            shipping_address=address.model_copy(deep=True),
            payment_method=payment_method.kind,
            coupon_code=coupon_code,
            status="pending",
            created_at=utcnow(),
            **payment_fields,
            **totals.model_dump(),
        )

        try:
            order_id = create_document(self.db, COLLECTION, order.model_dump(exclude={"id"}))
        except PyMongoError as e:
            logger.error("Failed to persist order %s: %s", order.order_number, e)
            raise OrderPersistenceError(str(e)) from e

        order.id = order_id
        logger.info(
            "Placed order %s for user %s (%s, total %.2f)",
            order.order_number, order.user_id, order.payment_method, order.total,
        )

        try:
            self.cart.clear()
        except PyMongoError as e:
            logger.error("Order %s placed but cart clear failed: %s", order.order_number, e)

        if coupon_code:
            try:
                self.db["coupon"].update_one({"code": coupon_code}, {"$inc": {"used_count": 1}})
            except PyMongoError as e:
                logger.error("Order %s placed but coupon %s usage was not recorded: %s",
                             order.order_number, coupon_code, e)

        return order


def _order_from_doc(doc: Dict[str, Any]) -> Order:
    return Order(**to_str_id(doc))


def list_orders(db: Database, user_id: Optional[str] = None, limit: Optional[int] = None) -> List[Order]:
    """Orders newest first; all users when ``user_id`` is None."""
    query = {"user_id": user_id} if user_id is not None else {}
    docs = get_documents(db, COLLECTION, query, limit=limit, sort=[("created_at", -1)])
    return [_order_from_doc(d) for d in docs]


def get_order(db: Database, order_id: str, user_id: Optional[str] = None) -> Order:
    try:
        query: Dict[str, Any] = {"_id": ensure_object_id(order_id)}
    except ValidationError:
        raise OrderNotFoundError(order_id)
    if user_id is not None:
        query["user_id"] = user_id
    doc = db[COLLECTION].find_one(query)
    if not doc:
        raise OrderNotFoundError(order_id)
    return _order_from_doc(doc)


def update_status(db: Database, order_id: str, status: str, tracking_number: Optional[str] = None) -> Order:
    order = get_order(db, order_id)
    if status != order.status and status not in STATUS_TRANSITIONS.get(order.status, ()):
        raise InvalidStatusTransitionError(order.status, status)

    changes: Dict[str, Any] = {"status": status, "updated_at": utcnow()}
    if tracking_number:
        changes["tracking_number"] = tracking_number
    db[COLLECTION].update_one({"_id": ensure_object_id(order_id)}, {"$set": changes})
    logger.info("Order %s status %s -> %s", order.order_number, order.status, status)
    return get_order(db, order_id)
