"""
Pytest fixtures for the procurement backend tests.

Provides the test app (in-memory SQLite), a fresh database per test, a fixed
pricing context and a deterministic id clock.
"""

import itertools

import pytest

from metaltrade import create_app, time_utils
from metaltrade.domain import Product, PurchaseItem
from metaltrade.extensions import db
from metaltrade.services.pricing_service import PricingContext


RATE = 12800.0


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_EXCHANGE_RATE': RATE,
        'VAT_RATE': 12.0,
        'PAYMENT_TOLERANCE_USD': 0.1,
        'IMPORT_TAX_POLICY': 'capitalize',
        'OPENING_CASH_USD': 0.0,
        'OPENING_CASH_UZS': 0.0,
        'OPENING_CARD_UZS': 0.0,
        'OPENING_BANK_UZS': 0.0,
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


@pytest.fixture(autouse=True)
def fixed_clock(monkeypatch):
    """Document ids come from a counter instead of the wall clock."""
    counter = itertools.count(1_700_000_000_000)
    monkeypatch.setattr(time_utils, "epoch_millis", lambda dt=None: next(counter))


@pytest.fixture
def ctx():
    return PricingContext(exchange_rate=RATE)


@pytest.fixture
def pipe():
    return Product(id="P-1", name="Труба 57x3", type="Труба", dimensions="57x3", warehouse="main")


def line(product_id="P-1", quantity=10.0, price=2.0, **kwargs) -> PurchaseItem:
    """Purchase line helper for tests."""
    return PurchaseItem(
        product_id=product_id,
        product_name=kwargs.pop("product_name", f"Product {product_id}"),
        quantity=quantity,
        invoice_price=price,
        **kwargs,
    )
