"""
Pytest fixtures for stock ledger tests.

Provides test database setup, a store with a Bottle/Case unit family plus an
unrelated Kg base unit, and products with and without legacy stock.
"""

from decimal import Decimal

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Organization, Store, Unit, Product, StockLot, StockRecord
from stockledger.services import unit_service


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
        db.session.remove()


@pytest.fixture(scope='function')
def org(db_session):
    org = Organization(name="Acme Retail", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store(db_session, org):
    store = Store(org_id=org.id, name="Store A1", code="A1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session, org):
    store = Store(org_id=org.id, name="Store A2", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def bottle(db_session, store):
    return unit_service.create_unit(store_id=store.id, name="Bottle")


@pytest.fixture(scope='function')
def case(db_session, store, bottle):
    return unit_service.create_unit(
        store_id=store.id, name="Case", base_unit_id=bottle.id, conversion_factor=24
    )


@pytest.fixture(scope='function')
def six_pack(db_session, store, bottle):
    return unit_service.create_unit(
        store_id=store.id, name="Six Pack", base_unit_id=bottle.id, conversion_factor=6
    )


@pytest.fixture(scope='function')
def kg(db_session, store):
    return unit_service.create_unit(store_id=store.id, name="Kg")


@pytest.fixture(scope='function')
def product(db_session, store, bottle, case):
    """Beer sold by the bottle or the case; no legacy stock."""
    product = Product(
        store_id=store.id,
        sku="BEER-001",
        name="Lager",
        default_unit_id=bottle.id,
        stock_quantity=Decimal("0"),
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def legacy_product(db_session, store, bottle, case):
    """Product created before per-unit tracking: 240 bottles on the summary counter only."""
    product = Product(
        store_id=store.id,
        sku="BEER-LEGACY",
        name="Old Lager",
        default_unit_id=bottle.id,
        stock_quantity=Decimal("240"),
    )
    db_session.add(product)
    db_session.commit()
    return product


def lot_total(product_id: int, store_id: int, unit_id: int) -> Decimal:
    """Sum of remaining quantity over every lot of the triple."""
    total = Decimal("0")
    for lot in StockLot.query.filter_by(product_id=product_id, store_id=store_id, unit_id=unit_id).all():
        total += lot.remaining_quantity
    return total


def record_quantity(product_id: int, store_id: int, unit_id: int):
    record = StockRecord.query.filter_by(product_id=product_id, store_id=store_id, unit_id=unit_id).first()
    return None if record is None else record.quantity


def summary_counter(product_id: int) -> Decimal:
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity
