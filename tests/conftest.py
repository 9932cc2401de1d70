"""Pytest fixtures for the storefront tests."""
from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from checkout import CheckoutContext
from schemas import AddressIn
from settings import Settings


@pytest.fixture
def db():
    """In-memory MongoDB database."""
    return mongomock.MongoClient()["fashionfusion_test"]


@pytest.fixture
def settings():
    return Settings(card_authorization_delay=0)


@pytest.fixture
def user_id():
    return str(ObjectId())


@pytest.fixture
def ctx(db, user_id, settings):
    return CheckoutContext(db=db, user_id=user_id, settings=settings)


@pytest.fixture
def product(db):
    doc = {
        "title": "Silk Wrap Dress",
        "slug": "silk-wrap-dress",
        "description": "Bias-cut silk wrap dress.",
        "price": 1659.0,
        "colors": ["black", "ivory"],
        "sizes": ["S", "M", "L"],
        "images": ["https://cdn.example.com/silk-wrap-dress.jpg"],
        "in_stock": True,
        "stock_qty": 12,
    }
    doc["_id"] = db["product"].insert_one(dict(doc)).inserted_id
    return doc


@pytest.fixture
def address_fields():
    return AddressIn(
        label="Home",
        street="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        zip_code="560001",
        country="India",
        phone="9876543210",
    )


@pytest.fixture
def coupon(db):
    now = datetime.now(timezone.utc)
    doc = {
        "code": "WELCOME10",
        "description": "10% off your first order",
        "discount_type": "percentage",
        "discount_value": 10,
        "max_discount": 200,
        "used_count": 0,
        "is_active": True,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
    }
    db["coupon"].insert_one(dict(doc))
    return doc


@pytest.fixture
def client(db, settings):
    from database import get_db
    from main import app
    from settings import get_settings

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def shopper(client):
    """Client with a logged-in customer session."""
    response = client.post(
        "/api/auth/register",
        json={"name": "Asha", "email": "asha@example.com", "password": "secret123"},
    )
    assert response.status_code == 201
    return client
