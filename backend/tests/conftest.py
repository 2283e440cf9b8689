"""
Pytest fixtures for the pantry ordering backend.

Provides the app on in-memory SQLite, a fakeredis client in place of Redis,
two tenants with spaces and catalog items, and bearer-token helpers.
"""

import json
from datetime import timedelta

import fakeredis
import pytest

from pantry import create_app
from pantry.config import TestConfig
from pantry.extensions import db
from pantry.models import Category, Coupon, Item, Organization, Space, User
from pantry.models.auth import ROLE_ADMIN, ROLE_PANTRY, ROLE_USER
from pantry.services import auth_service, session_service
from pantry.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)
    app.extensions["redis"] = fakeredis.FakeRedis(decode_responses=True)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def redis_client(app):
    return app.extensions["redis"]


@pytest.fixture(scope='function')
def db_session(app, redis_client):
    """Fresh database and cache for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        redis_client.flushall()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (free ordering)."""
    org = Organization(name="Org A - Acme Corp", slug="acme", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", slug="beta", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def space_a(db_session, org_a):
    space = Space(org_id=org_a.id, name="Room 4B", qr_code="QR-ACME-4B")
    db_session.add(space)
    db_session.commit()
    return space


@pytest.fixture(scope='function')
def space_b(db_session, org_b):
    space = Space(org_id=org_b.id, name="Lobby", qr_code="QR-BETA-LOBBY")
    db_session.add(space)
    db_session.commit()
    return space


@pytest.fixture(scope='function')
def beverages_a(db_session, org_a):
    category = Category(org_id=org_a.id, name="Beverages", sort_order=1)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def coffee(db_session, org_a, beverages_a):
    """Coffee: 80 minor units, 5 in stock."""
    item = Item(org_id=org_a.id, category_id=beverages_a.id, name="Coffee", price_cents=80, stock=5)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def tea(db_session, org_a, beverages_a):
    """Tea: 50 minor units, unlimited stock."""
    item = Item(org_id=org_a.id, category_id=beverages_a.id, name="Tea", price_cents=50, stock=None)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def water(db_session, org_a, beverages_a):
    """Water: free item with a nominal catalog price."""
    item = Item(org_id=org_a.id, category_id=beverages_a.id, name="Water", price_cents=30, is_free=True)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, org_b):
    category = Category(org_id=org_b.id, name="Snacks")
    db_session.add(category)
    db_session.commit()
    item = Item(org_id=org_b.id, category_id=category.id, name="Biscuits", price_cents=40)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def session_a(db_session, space_a):
    """Active 60 minute session in Room 4B."""
    return session_service.open_session(space_a.qr_code, 60, guest_name="Asha", chair_number=3)


@pytest.fixture(scope='function')
def make_coupon(db_session):
    """Factory: PERCENTAGE 10 coupon valid since yesterday unless overridden."""
    def _make(org_id: int, code: str, **kwargs) -> Coupon:
        fields = {
            "discount_type": "PERCENTAGE",
            "value": 10,
            "valid_from": utcnow() - timedelta(days=1),
        }
        fields.update(kwargs)
        coupon = Coupon(org_id=org_id, code=code, **fields)
        db_session.add(coupon)
        db_session.commit()
        return coupon

    return _make


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(org_id: int, email: str, role: str = ROLE_USER) -> User:
        user = User(org_id=org_id, email=email, role=role)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin_a(make_user, org_a):
    return make_user(org_a.id, "admin@acme.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def pantry_a(make_user, org_a):
    return make_user(org_a.id, "pantry@acme.test", ROLE_PANTRY)


@pytest.fixture(scope='function')
def guest_a(make_user, org_a):
    return make_user(org_a.id, "guest@acme.test", ROLE_USER)


@pytest.fixture(scope='function')
def pantry_b(make_user, org_b):
    return make_user(org_b.id, "pantry@beta.test", ROLE_PANTRY)


def auth_headers(user: User) -> dict:
    """Issue a bearer token for `user` and build the Authorization header."""
    _, token = auth_service.issue_token(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_a):
    return auth_headers(admin_a)


@pytest.fixture(scope='function')
def pantry_headers(pantry_a):
    return auth_headers(pantry_a)


@pytest.fixture(scope='function')
def guest_headers(guest_a):
    return auth_headers(guest_a)


@pytest.fixture(scope='function')
def pantry_b_headers(pantry_b):
    return auth_headers(pantry_b)


class EventListener:
    """Subscriber on a tenant's order channel."""

    def __init__(self, redis_client, org_id: int):
        self.pubsub = redis_client.pubsub()
        self.pubsub.subscribe(f"orders:{org_id}")
        self.pubsub.get_message(timeout=1.0)  # subscribe confirmation

    def next(self) -> dict | None:
        message = self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        if message is None:
            return None
        return json.loads(message["data"])


@pytest.fixture(scope='function')
def org_a_events(redis_client, org_a):
    listener = EventListener(redis_client, org_a.id)
    yield listener
    listener.pubsub.close()
