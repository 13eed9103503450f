"""
Pytest fixtures for fabricstock backend tests.

Provides test database setup, per-user fixtures, and test client.
"""

import pytest

from fabricstock import create_app
from fabricstock.config import TestConfig
from fabricstock.extensions import db
from fabricstock.models import Product


USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def headers():
    return {"X-User-Id": USER_ID}


@pytest.fixture(scope='function')
def other_headers():
    return {"X-User-Id": OTHER_USER_ID}


def make_product(db_session, name="Cotton Twill", quantity=100, user_id=USER_ID,
                 category="Fabric", type_="Plain"):
    product = Product(
        user_id=user_id,
        name=name,
        category=category,
        type=type_,
        quantity=quantity,
        initial_quantity=quantity,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """Product P with 100 units."""
    return make_product(db_session)


@pytest.fixture(scope='function')
def second_product(db_session):
    return make_product(db_session, name="Linen Print", quantity=20, type_="Printed")


def quantity_of(product_id: int) -> int:
    """Fresh read of a product's quantity (bypasses the identity map)."""
    db.session.expire_all()
    return db.session.get(Product, product_id).quantity


def order_payload(product_id, quantity=10, *, order_number="O1", status="Shipped",
                  unit_price_cents=15000, **extra):
    payload = {
        "order_number": order_number,
        "shop": "Shopee",
        "order_date": "2026-03-01",
        "status": status,
        "buyer_name": "Ana Cruz",
        "lines": [{"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price_cents}],
    }
    payload.update(extra)
    return payload
