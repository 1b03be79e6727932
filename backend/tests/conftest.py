"""
Pytest fixtures for SmartShop backend tests.

Provides an in-memory database, a test client, users and product factories.
"""

import pytest
from smartshop import create_app
from smartshop.extensions import db
from smartshop.models import Inventory, Product, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OPENAI_API_KEY': None,
        'OCR_API_URL': None,
        'VISION_API_URL': None,
        'TAX_RATE_BPS': 0,
        'ALERT_AUTO_RESOLVE': False,
        'SCHEDULER_ENABLED': False,
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
def seller(db_session):
    user = User(name="Sam Seller", email="seller@test.local", role="seller", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_seller(db_session):
    user = User(name="Olive Other", email="other@test.local", role="seller", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    user = User(name="Casey Customer", email="customer@test.local", role="customer", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_product(db_session, seller):
    """Factory: make_product(name=..., price_cents=..., **fields)."""
    def _make(name="Whole Milk", price_cents=10000, **fields):
        fields.setdefault("seller_id", seller.id)
        fields.setdefault("category", "dairy")
        product = Product(name=name, price_cents=price_cents, **fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_inventory(db_session, seller):
    """Factory: make_inventory(product, stock_level=..., **fields)."""
    def _make(product, stock_level=50, **fields):
        fields.setdefault("seller_id", product.seller_id)
        record = Inventory(product_id=product.id, stock_level=stock_level, **fields)
        db_session.add(record)
        db_session.commit()
        return record

    return _make
