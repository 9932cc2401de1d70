"""Tests for order submission and order status updates."""
import logging
import re

import pytest
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

import orders
from addresses import AddressBook
from cart import CartStore
from errors import (
    EmptyCartError,
    InvalidStatusTransitionError,
    MissingAddressError,
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentNotConfirmedError,
)
from orders import OrderSubmissionService, generate_order_number, get_order, list_orders, update_status
from payments import CashOnDelivery, GatewayRedirect, PaymentConfirmation
from pricing import compute_totals
from schemas import AddressUpdate

GATEWAY_CONFIRMATION = PaymentConfirmation(
    kind="razorpay",
    razorpay_order_id="order_1",
    razorpay_payment_id="pay_1",
    razorpay_signature="sig_1",
)


@pytest.fixture
def cart(db, user_id, product):
    store = CartStore(db, user_id)
    store.add(product, 2, "M", "black")
    return store


@pytest.fixture
def address(db, user_id, address_fields):
    return AddressBook(db, user_id).create(address_fields)


@pytest.fixture
def service(db, cart):
    return OrderSubmissionService(db, cart)


def totals_for(items, settings):
    return compute_totals(items, settings.free_shipping_threshold, settings.flat_shipping_rate, settings.tax_rate)


def place_cod(service, cart, address, settings):
    items = cart.items()
    return service.submit(items, address, CashOnDelivery(), PaymentConfirmation(kind="cod"), totals_for(items, settings))


class TestOrderNumber:
    def test_format(self):
        assert re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{9}", generate_order_number())

    def test_unique(self):
        numbers = {generate_order_number() for _ in range(500)}
        assert len(numbers) == 500


class TestPreconditions:
    def test_empty_cart(self, db, service, address, settings):
        with pytest.raises(EmptyCartError):
            service.submit([], address, CashOnDelivery(), None, totals_for([], settings))
        assert db["order"].count_documents({}) == 0

    def test_missing_address(self, db, service, cart, settings):
        items = cart.items()
        with pytest.raises(MissingAddressError):
            service.submit(items, None, CashOnDelivery(), None, totals_for(items, settings))
        assert db["order"].count_documents({}) == 0

    @pytest.mark.parametrize("confirmation", [
        None,
        PaymentConfirmation(kind="razorpay", razorpay_order_id="order_1", razorpay_payment_id="pay_1"),
        PaymentConfirmation(kind="cod"),
    ])
    def test_gateway_needs_all_identifiers(self, db, service, cart, address, settings, confirmation):
        items = cart.items()
        with pytest.raises(PaymentNotConfirmedError):
            service.submit(items, address, GatewayRedirect(), confirmation, totals_for(items, settings))
        assert db["order"].count_documents({}) == 0
        assert len(cart.items()) == 1


class TestSubmit:
    def test_cod_order(self, db, service, cart, address, settings, user_id):
        order = place_cod(service, cart, address, settings)

        assert order.id is not None
        assert order.status == "pending"
        assert order.payment_method == "cod"
        assert order.razorpay_order_id is None
        assert order.total == 3583.44
        assert db["order"].count_documents({"user_id": user_id}) == 1
        assert cart.items() == []

    def test_gateway_order_carries_identifiers(self, service, cart, address, settings):
        items = cart.items()
        order = service.submit(items, address, GatewayRedirect(), GATEWAY_CONFIRMATION, totals_for(items, settings))

        assert order.payment_method == "razorpay"
        assert order.razorpay_order_id == "order_1"
        assert order.razorpay_payment_id == "pay_1"
        assert order.razorpay_signature == "sig_1"

    def test_address_is_a_snapshot(self, db, service, cart, address, settings, user_id):
        order = place_cod(service, cart, address, settings)

        AddressBook(db, user_id).update(address.id, AddressUpdate(street="99 New Street"))

        stored = get_order(db, order.id, user_id)
        assert stored.shipping_address.street == "12 MG Road"

    def test_items_are_a_snapshot(self, db, service, cart, address, settings, user_id, product):
        order = place_cod(service, cart, address, settings)

        cart.add(product, 5, "L", "ivory")

        stored = get_order(db, order.id, user_id)
        assert [(i.size, i.quantity) for i in stored.items] == [("M", 2)]

    def test_persistence_failure_leaves_cart(self, monkeypatch, service, cart, address, settings):
        def broken_insert(*args, **kwargs):
            raise ServerSelectionTimeoutError("no primary")

        monkeypatch.setattr(orders, "create_document", broken_insert)

        with pytest.raises(OrderPersistenceError):
            place_cod(service, cart, address, settings)
        assert len(cart.items()) == 1

    def test_cart_clear_failure_is_logged_only(self, monkeypatch, caplog, db, service, cart, address, settings):
        def broken_clear():
            raise PyMongoError("write concern error")

        monkeypatch.setattr(cart, "clear", broken_clear)

        with caplog.at_level(logging.ERROR, logger="orders"):
            order = place_cod(service, cart, address, settings)

        assert db["order"].count_documents({"order_number": order.order_number}) == 1
        assert "cart clear failed" in caplog.text

    def test_coupon_usage_recorded(self, db, service, cart, address, settings, coupon):
        items = cart.items()
        service.submit(
            items, address, CashOnDelivery(), PaymentConfirmation(kind="cod"),
            totals_for(items, settings), coupon_code="WELCOME10",
        )
        assert db["coupon"].find_one({"code": "WELCOME10"})["used_count"] == 1


class TestHistory:
    def test_list_and_get_are_scoped_to_user(self, db, service, cart, address, settings, user_id):
        order = place_cod(service, cart, address, settings)

        assert [o.order_number for o in list_orders(db, user_id)] == [order.order_number]
        assert list_orders(db, "someone-else") == []
        with pytest.raises(OrderNotFoundError):
            get_order(db, order.id, "someone-else")

    def test_malformed_id_is_not_found(self, db, user_id):
        with pytest.raises(OrderNotFoundError):
            get_order(db, "not-an-order-id", user_id)


class TestStatusUpdates:
    def test_allowed_transition(self, db, service, cart, address, settings):
        order = place_cod(service, cart, address, settings)

        update_status(db, order.id, "confirmed")
        shipped = update_status(db, order.id, "shipped", tracking_number="DTDC123")

        assert shipped.status == "shipped"
        assert shipped.tracking_number == "DTDC123"

    def test_skipping_ahead_is_rejected(self, db, service, cart, address, settings):
        order = place_cod(service, cart, address, settings)
        with pytest.raises(InvalidStatusTransitionError):
            update_status(db, order.id, "delivered")

    def test_cancelled_is_terminal(self, db, service, cart, address, settings):
        order = place_cod(service, cart, address, settings)
        update_status(db, order.id, "cancelled")
        with pytest.raises(InvalidStatusTransitionError):
            update_status(db, order.id, "processing")
