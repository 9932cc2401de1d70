"""Tests for the cart store."""
import pytest

from cart import CartStore
from errors import CartItemNotFoundError, ValidationError


@pytest.fixture
def store(db, user_id):
    return CartStore(db, user_id)


def test_new_cart_is_empty(store):
    assert store.items() == []


def test_add_takes_price_and_name_from_product(store, product):
    [item] = store.add(product, 1, "M", "black")
    assert item.name == "Silk Wrap Dress"
    assert item.unit_price == 1659.0
    assert item.image == "https://cdn.example.com/silk-wrap-dress.jpg"
    assert item.product_id == str(product["_id"])


def test_same_variant_is_merged(store, product):
    store.add(product, 1, "M", "black")
    items = store.add(product, 2, "M", "black")
    assert len(items) == 1
    assert items[0].quantity == 3


def test_different_variant_is_separate_line(store, product):
    store.add(product, 1, "M", "black")
    items = store.add(product, 1, "L", "black")
    assert [(i.size, i.quantity) for i in items] == [("M", 1), ("L", 1)]


def test_unavailable_size(store, product):
    with pytest.raises(ValidationError, match="Size XXL"):
        store.add(product, 1, "XXL", "black")


def test_out_of_stock(store, product):
    product["in_stock"] = False
    with pytest.raises(ValidationError, match="out of stock"):
        store.add(product, 1, "M", "black")


def test_update_quantity(store, product):
    [item] = store.add(product, 1, "M", "black")
    [updated] = store.update(item.item_id, 4)
    assert updated.quantity == 4


def test_update_to_zero_removes(store, product):
    [item] = store.add(product, 1, "M", "black")
    assert store.update(item.item_id, 0) == []


def test_remove(store, product):
    [item] = store.add(product, 1, "M", "black")
    store.remove(item.item_id)
    assert store.items() == []
    with pytest.raises(CartItemNotFoundError):
        store.remove(item.item_id)


def test_clear_only_touches_own_cart(db, store, product):
    other = CartStore(db, "other-user")
    other.add(product, 1, "S", "ivory")
    store.add(product, 1, "M", "black")

    store.clear()

    assert store.items() == []
    assert len(other.items()) == 1
