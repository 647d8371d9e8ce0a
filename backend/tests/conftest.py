"""
Pytest fixtures for filtertrack backend tests.

Provides test database setup, actor fixtures, and test client.
"""

import pytest
from sqlalchemy import text

from filtertrack import create_app
from filtertrack.actors import ActorContext
from filtertrack.extensions import db

UNIT_CODE = "OG971390|202630010002"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_TIMEZONE': 'UTC',
        'DEFAULT_REPLACEMENT_DAYS': 90,
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
        # AUTOINCREMENT tables: restart ids at 1
        db.session.execute(text("DELETE FROM sqlite_sequence"))
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def mechanic():
    return ActorContext.build("ana@plant.local", "mechanic")


@pytest.fixture
def dispatcher():
    return ActorContext.build("leo@plant.local", "dispatcher", "ACME")


@pytest.fixture
def installer():
    return ActorContext.build("tom@acme.local", "mechanic", "ACME")


@pytest.fixture
def admin_acme():
    return ActorContext.build("boss@acme.local", "admin", "ACME")


@pytest.fixture
def superadmin():
    return ActorContext.build("root@plant.local", "superadmin")


def actor_headers(identity: str, role: str, client: str = "") -> dict:
    """Helper to create the trusted actor headers."""
    headers = {
        'X-Actor-Identity': identity,
        'X-Actor-Role': role,
    }
    if client:
        headers['X-Actor-Client'] = client
    return headers
