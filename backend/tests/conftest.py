"""
Pytest fixtures for consignbook backend tests.

Provides an in-memory database, a per-test table wipe, a test client and
small catalog fixtures (partner, products, a confirmed consignment).
"""

import uuid

import pytest

from consignbook import create_app
from consignbook.extensions import db
from consignbook.services import consignment_service, products_service
from consignbook.state import get_state


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        # Private channel so parallel sessions never hear each other
        'SYNC_CHANNEL_NAME': f'consignbook-test-{uuid.uuid4().hex}',
        'ALLOW_NEGATIVE_STOCK': False,
        'DEFAULT_MIN_STOCK_ALERT': 2,
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
        get_state().cache.load()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config['ALLOW_NEGATIVE_STOCK'] = False


@pytest.fixture(scope='function')
def partner(db_session):
    """Partner with a 20% default commission."""
    return products_service.create_partner({
        'name': 'Lakeside Gallery',
        'contact': 'Mia',
        'default_commission_rate': 20,
    })


@pytest.fixture(scope='function')
def other_partner(db_session):
    return products_service.create_partner({'name': 'Harbor Boutique'})


@pytest.fixture(scope='function')
def ring(db_session):
    """Product with 10 in stock, retail 100.00."""
    return products_service.create_product({
        'sku': 'RING-001',
        'name': 'Silver Ring',
        'category': 'rings',
        'cost_price_cents': 4000,
        'retail_price_cents': 10000,
        'stock': 10,
        'min_stock_alert': 3,
    })


@pytest.fixture(scope='function')
def necklace(db_session):
    """Product with 5 in stock, retail 250.00."""
    return products_service.create_product({
        'sku': 'NECK-001',
        'name': 'Pearl Necklace',
        'category': 'necklaces',
        'cost_price_cents': 9000,
        'retail_price_cents': 25000,
        'stock': 5,
        'min_stock_alert': 1,
    })


@pytest.fixture(scope='function')
def confirmed_order(db_session, partner, ring, necklace):
    """CONFIRMED consignment: 4 rings, 2 necklaces."""
    order = consignment_service.create_consignment(
        partner_id=partner.id,
        items=[
            {'product_id': ring.id, 'quantity': 4},
            {'product_id': necklace.id, 'quantity': 2},
        ],
    )
    return consignment_service.confirm_consignment(order.id)


def stock_of(product_id: str) -> int:
    """Committed stock, bypassing the identity map."""
    db.session.expire_all()
    return products_service.get_product(product_id).stock
