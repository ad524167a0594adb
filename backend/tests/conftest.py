"""
Pytest fixtures for pharmstock backend tests.

Provides test database setup, tenant fixtures, auth helpers and test client.
"""

import pytest

from pharmstock import create_app
from pharmstock.extensions import db
from pharmstock.models import Organization, User
from pharmstock.services.auth_service import hash_password
from pharmstock.services.session_service import create_session
from pharmstock.services import drug_service


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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
def org_a(db_session):
    """Create Organization A (first hospital)."""
    org = Organization(name="Org A - General Hospital", code="GH", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second hospital)."""
    org = Organization(name="Org B - City Clinic", code="CC", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


def make_user(db_session, org, username: str) -> User:
    user = User(
        org_id=org.id,
        username=username,
        email=f"{username}@{org.code.lower()}.local",
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, org_a):
    """Pharmacist in Organization A."""
    return make_user(db_session, org_a, "pharm_a")


@pytest.fixture(scope='function')
def user_b(db_session, org_b):
    """Pharmacist in Organization B."""
    return make_user(db_session, org_b, "pharm_b")


@pytest.fixture(scope='function')
def token_a(user_a):
    _session, token = create_session(user_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(user_b):
    _session, token = create_session(user_b.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def drug_payload(**overrides) -> dict:
    """A valid creation payload (validated form, as the service receives it)."""
    payload = {
        "hospital_drug_code": "TAB001",
        "name": "Paracetamol 500mg",
        "generic_name": "Paracetamol",
        "dosage_form": "TAB",
        "strength": "500mg",
        "unit": "box",
        "package_size": "10x10",
        "category": "TABLET",
        "price_per_box_cents": 1000,
        "department": "PHARMACY",
        "initial_quantity": 0,
        "minimum_stock": 10,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope='function')
def make_drug(db_session, org_a, user_a):
    """Create drug variants in Organization A through the creation transaction."""
    def _make(**overrides):
        org_id = overrides.pop("org_id", org_a.id)
        actor_id = overrides.pop("actor_id", user_a.id)
        return drug_service.create_drug(org_id=org_id, actor_id=actor_id, patch=drug_payload(**overrides))
    return _make
