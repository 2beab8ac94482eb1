"""
Pytest fixtures for HypePOS inventory engine tests.

Provides an in-memory database, per-test table cleanup, master data
fixtures and helpers for attribution headers.
"""

import pytest
from app import create_app
from app.engine import InventoryEngine
from app.extensions import db
from app.models import Item, Location, User
from app.services import metrics, session_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'AUTO_MIGRATE': False,
    'TRANSFER_DECREMENT_SOURCE': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
        metrics.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def engine(app, db_session):
    """Components wired against the test session."""
    return InventoryEngine(db_session, app.config, app.logger)


@pytest.fixture(scope='function')
def hq(db_session):
    loc = Location(code="HQ", name="Head Office", kind="HQ")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def outlet_a(db_session):
    loc = Location(code="OUT-A", name="Outlet A", kind="OUTLET")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def outlet_b(db_session):
    loc = Location(code="OUT-B", name="Outlet B", kind="OUTLET")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def item_tee(db_session):
    item = Item(
        item_code="TEE-BLK-M",
        stock_no="ST1001",
        name="Oversized Tee",
        size="M",
        brand="Hype",
        colour="Black",
        retail_price_cents=100000,
        dealer_price_cents=60000,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_hoodie(db_session):
    item = Item(
        item_code="HOOD-GRY-L",
        stock_no="ST2002",
        name="Zip Hoodie",
        size="L",
        retail_price_cents=120000,
        dealer_price_cents=80000,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def user_at_outlet_a(db_session, outlet_a):
    user = User(username="asha", display_name="Asha", email="asha@hypepos.local", location_id=outlet_a.id)
    db_session.add(user)
    db_session.commit()
    return user


def bearer_token(session, user) -> str:
    """Issue a session token for a user."""
    _, token = session_service.create_session(session, user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def actor_headers(user_id=None, name=None, location_id=None) -> dict:
    headers = {}
    if user_id is not None:
        headers['X-User-Id'] = str(user_id)
    if name is not None:
        headers['X-User-Name'] = name
    if location_id is not None:
        headers['X-Location-Id'] = str(location_id)
    return headers
