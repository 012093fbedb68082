"""
Pytest fixtures for theaterpos backend tests.

Provides test database setup, two provisioned theaters for tenant isolation
checks, users for every role, a controllable clock and the test client.
"""

from datetime import datetime, timedelta

import pytest

from theaterpos import create_app
from theaterpos.extensions import db
from theaterpos.models import Product
from theaterpos.models.auth import ROLE_CUSTOMER, ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN, ROLE_THEATER_STAFF
from theaterpos.permissions import KIOSK_ROLE_ID
from theaterpos.services import auth_service, theater_service


PASSWORD = "Password123!"

# Every module that imports utcnow by name
CLOCK_MODULES = (
    "theaterpos.time_utils",
    "theaterpos.services.auth_service",
    "theaterpos.services.session_service",
    "theaterpos.services.login_throttle_service",
    "theaterpos.services.permission_service",
    "theaterpos.services.page_access_service",
    "theaterpos.services.role_service",
    "theaterpos.services.otp_service",
    "theaterpos.services.stock_ledger_service",
    "theaterpos.services.maintenance_service",
    "theaterpos.routes.system",
    "theaterpos.routes.stock_history",
)


class Clock:
    """Frozen, manually advanced replacement for utcnow()."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_LOG_ROUNDS': 4,
        'OTP_DEMO_MODE': True,
        'OTP_REAPER_INTERVAL_SECONDS': 0,
        'OTP_SENDER': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
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
def clock(monkeypatch):
    """Freeze utcnow() at 2024-03-15 12:00 UTC; advance with clock.advance(...)."""
    import importlib

    frozen = Clock(datetime(2024, 3, 15, 12, 0, 0))
    for name in CLOCK_MODULES:
        module = importlib.import_module(name)
        monkeypatch.setattr(module, "utcnow", frozen)
    return frozen


@pytest.fixture(scope='function')
def theater_a(db_session):
    """Provisioned Theater A (first tenant)."""
    return theater_service.provision_theater("Theater A - Downtown", "TA")


@pytest.fixture(scope='function')
def theater_b(db_session):
    """Provisioned Theater B (second tenant)."""
    return theater_service.provision_theater("Theater B - Uptown", "TB")


@pytest.fixture(scope='function')
def super_admin(db_session):
    return auth_service.register_user("root", "root@theaterpos.local", PASSWORD, role=ROLE_SUPER_ADMIN)


@pytest.fixture(scope='function')
def admin_a(db_session, theater_a):
    """theater_admin of Theater A, linked to the built-in admin role."""
    return auth_service.register_user(
        "admin_a", "admin_a@theater-a.local", PASSWORD,
        role=ROLE_THEATER_ADMIN, theater_id=theater_a.id,
    )


@pytest.fixture(scope='function')
def admin_b(db_session, theater_b):
    return auth_service.register_user(
        "admin_b", "admin_b@theater-b.local", PASSWORD,
        role=ROLE_THEATER_ADMIN, theater_id=theater_b.id,
    )


@pytest.fixture(scope='function')
def kiosk_a(db_session, theater_a):
    """theater_staff of Theater A on the Kiosk role (no page access)."""
    return auth_service.register_user(
        "kiosk_a", "kiosk_a@theater-a.local", PASSWORD,
        role=ROLE_THEATER_STAFF, theater_id=theater_a.id, role_id=KIOSK_ROLE_ID,
    )


@pytest.fixture(scope='function')
def customer(db_session):
    return auth_service.register_user("movie_fan", "fan@example.com", PASSWORD, role=ROLE_CUSTOMER)


@pytest.fixture(scope='function')
def product_a(db_session, theater_a):
    """Create Product in Theater A."""
    return theater_service.create_product(theater_a.id, "Popcorn Large", unit="tub", price_cents=25000)


@pytest.fixture(scope='function')
def product_b(db_session, theater_b):
    """Create Product in Theater B."""
    product = Product(theater_id=theater_b.id, name="Nachos", unit="tray", price_cents=18000)
    db_session.add(product)
    db_session.commit()
    return product


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client):
    """login(user) -> Authorization headers for that user."""
    def _login(user, password: str = PASSWORD) -> dict:
        token = get_auth_token(client, user.username, password)
        assert token, f"login failed for {user.username}"
        return auth_headers(token)
    return _login
