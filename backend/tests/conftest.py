"""
Pytest fixtures for poscore tests.

Provides an in-memory database, a test client, catalog products and a
fixed clock for folio numbering.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from poscore import create_app
from poscore.config import TestConfig
from poscore.extensions import db
from poscore.models import Product


# Fixed "now" so folio day keys are predictable
FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0)
DAY_KEY = "20260115"


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
def product_a(db_session):
    """Notebook, 10.00, 5 on hand."""
    product = Product(
        code="7501000000011",
        name="Notebook A5",
        price=Decimal("10.00"),
        stock=5,
        stock_minimum=1,
        discount_percent=Decimal("0"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    """Backpack, 450.00, 2 on hand."""
    product = Product(
        code="7501000000035",
        name="Backpack",
        price=Decimal("450.00"),
        stock=2,
        stock_minimum=1,
        discount_percent=Decimal("10"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def strict_totals(app):
    """Enable STRICT_SALE_TOTALS for one test."""
    app.config["STRICT_SALE_TOTALS"] = True
    yield
    app.config["STRICT_SALE_TOTALS"] = False


def current_stock(product_id: int) -> int:
    """Re-read stock from the database, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock
