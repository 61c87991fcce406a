"""
Pytest fixtures for MyPackaging backend tests.

Provides test database setup, operator accounts, product factories and the test client.
"""

import pytest

from mypackaging import create_app
from mypackaging.config import TestConfig
from mypackaging.extensions import db
from mypackaging.services import change_feed
from mypackaging.services.auth_service import create_user
from mypackaging.services.products_service import create_product

PASSWORD = "Password123!"


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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        change_feed.clear_subscriptions()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin@shop.local", PASSWORD, role="admin", display_name="Admin")


@pytest.fixture(scope='function')
def manager_user(db_session):
    return create_user("manager@shop.local", PASSWORD, role="manager", display_name="Manager")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user("staff@shop.local", PASSWORD, role="staff", display_name="Staff")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("Box 10x10", stock=10, unit_price_cents=500, ...)."""
    counter = {"n": 0}

    def _make(name=None, stock=0, unit_price_cents=500, **fields):
        counter["n"] += 1
        patch = {
            "name": name or f"Product {counter['n']}",
            "unit_price_cents": unit_price_cents,
        }
        patch.update(fields)
        return create_product(patch=patch, actor="tests", opening_stock=stock)

    return _make


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
