"""
Pytest fixtures for fishstock backend tests.

Provides test database setup, product factories, and test client.
"""

from decimal import Decimal

import pytest
from fishstock import create_app
from fishstock.extensions import db
from fishstock.services import products_service, sales_service


PRINCIPAL = "clerk-1"
REVIEWER = "manager-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF': 0,
    })

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
def make_product(db_session):
    """Factory: create a product with opening stock booked to the ledger."""
    counter = {"n": 0}

    def _make(boxes=0, loose_kg="0", ratio="10", box_price="100.00", kg_price="12.00", **extra):
        counter["n"] += 1
        payload = {
            "sku": extra.pop("sku", f"FISH-{counter['n']:03d}"),
            "name": extra.pop("name", f"Fish {counter['n']}"),
            "boxes": boxes,
            "loose_kg": loose_kg,
            "box_to_kg_ratio": ratio,
            "unit_price_per_box": box_price,
            "unit_price_per_kg": kg_price,
        }
        payload.update(extra)
        return products_service.create_product(payload=payload, performed_by=PRINCIPAL)

    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    """Factory: record a sale (paid by cash unless overridden)."""
    def _make(product, boxes=0, kg="0", **extra):
        kwargs = {
            "product_id": product.id,
            "boxes": boxes,
            "kg": Decimal(str(kg)),
            "payment_status": "paid",
            "payment_method": "cash",
            "performed_by": PRINCIPAL,
        }
        kwargs.update(extra)
        sale, _plan = sales_service.create_sale(**kwargs)
        return sale

    return _make


def auth_headers(principal: str = PRINCIPAL) -> dict:
    """Helper to create principal headers."""
    return {'X-Principal-Id': principal}


@pytest.fixture(scope='function')
def headers():
    return auth_headers()


@pytest.fixture(scope='function')
def reviewer_headers():
    return auth_headers(REVIEWER)
