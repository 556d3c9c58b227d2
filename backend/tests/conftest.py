"""
Pytest fixtures for the stock ledger backend tests.

Provides test database setup, service fixtures, a product factory and the
Flask test client.
"""

import pytest
from dairy_pos import create_app
from dairy_pos.extensions import db
from dairy_pos.models import Product, LedgerEntry
from dairy_pos.services.stock_ledger_service import build_stock_ledger
from dairy_pos.services.catalog_service import build_catalog
from dairy_pos.services.sales_service import build_sale_builder


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF_SECONDS': 0,
        'LEDGER_LOCK_TIMEOUT_SECONDS': 1.0,
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
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def ledger(db_session):
    return build_stock_ledger()


@pytest.fixture(scope='function')
def catalog(db_session):
    return build_catalog()


@pytest.fixture(scope='function')
def sale_builder(db_session):
    return build_sale_builder()


@pytest.fixture(scope='function')
def make_product(catalog):
    """Factory: create a product; stock is booked as an opening In entry."""
    def _make(name="Whole Milk", stock=0, price_cents=300, **overrides):
        patch = {
            "name": name,
            "category": "Milk",
            "price_cents": price_cents,
            "cost_cents": 100,
            "unit": "Liter",
            "stock_quantity": stock,
        }
        patch.update(overrides)
        return catalog.create_product(patch)
    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stock as stored, bypassing any cached state."""
    def _stock(product_id: int) -> int:
        return db.session.query(Product.stock_quantity).filter_by(id=product_id).scalar()
    return _stock


@pytest.fixture(scope='function')
def entries_for(db_session):
    """Ledger entries of a product, oldest first."""
    def _entries(product_id: int) -> list[LedgerEntry]:
        return (
            db.session.query(LedgerEntry)
            .filter_by(product_id=product_id)
            .order_by(LedgerEntry.id.asc())
            .all()
        )
    return _entries
