"""
Pytest fixtures for dashboard backend tests.

Provides an in-memory database, role and user factories, and credential
helpers. Every test starts from empty tables.
"""

import pytest
from dashboard import create_app
from dashboard.extensions import db
from dashboard.models import User, Role, Client, ClientAssignment
from dashboard.permissions import sanitize_permissions, full_permission_grid
from dashboard.services.auth_service import hash_password
from dashboard.services import session_service


TEST_PASSWORD = "Password123!"
TEST_JWT_SECRET = "test-secret-that-is-long-enough-for-hs256-signing"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': TEST_JWT_SECRET,
        'BCRYPT_ROUNDS': 4,
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


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture(scope='function')
def make_role(db_session):
    """Create a Role; permissions are stored sanitized like the API does."""
    def _make_role(
        name,
        full_access=False,
        is_team_manager=False,
        permissions=None,
        is_active=True,
        is_system=False,
    ):
        role = Role(
            name=name,
            full_access=full_access,
            is_team_manager=is_team_manager,
            permissions=full_permission_grid() if full_access else sanitize_permissions(permissions or {}),
            is_active=is_active,
            is_system=is_system,
        )
        db_session.add(role)
        db_session.commit()
        return role

    return _make_role


@pytest.fixture(scope='function')
def make_user(db_session):
    """Create a User directly, bypassing the API guards."""
    counter = {"n": 0}

    def _make_user(
        name=None,
        legacy_role="employee",
        role=None,
        created_by=None,
        managers=(),
        is_active=True,
        email=None,
    ):
        counter["n"] += 1
        name = name or f"User {counter['n']}"
        user = User(
            name=name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(TEST_PASSWORD),
            legacy_role=legacy_role,
            role_id=role.id if role else None,
            created_by_id=created_by.id if created_by else None,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()
        if managers:
            user.managers = list(managers)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make_client(name, created_by=None, assigned_to=()):
        record = Client(name=name, created_by_id=created_by.id if created_by else None, is_active=True)
        db_session.add(record)
        db_session.flush()
        for user in assigned_to:
            db_session.add(ClientAssignment(client_id=record.id, user_id=user.id))
        db_session.commit()
        return record

    return _make_client


# =============================================================================
# COMMON ROLES AND USERS
# =============================================================================


@pytest.fixture(scope='function')
def full_access_role(make_role):
    return make_role("Administrator", full_access=True, is_team_manager=True)


@pytest.fixture(scope='function')
def team_manager_role(make_role):
    return make_role(
        "Team Lead",
        is_team_manager=True,
        permissions={
            "Users": {"Read": True},
            "Clients": {"Read": True, "Create": True, "Update": True},
            "Pages": {"Dashboard": True, "Clients": True, "Users": True},
        },
    )


@pytest.fixture(scope='function')
def clients_reader_role(make_role):
    return make_role("Client Viewer", permissions={"Clients": {"Read": True}})


@pytest.fixture(scope='function')
def basic_role(make_role):
    return make_role("Basic", permissions={"Pages": {"Dashboard": True}})


@pytest.fixture(scope='function')
def admin_user(make_user, full_access_role):
    return make_user(name="Admin", role=full_access_role, email="admin@example.com")


@pytest.fixture(scope='function')
def team_manager(make_user, team_manager_role):
    return make_user(name="Team Manager", role=team_manager_role, email="lead@example.com")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Mint a credential for a user at its current token_version."""
    def _headers_for(user) -> dict:
        return auth_headers(session_service.issue_token(user))

    return _headers_for


@pytest.fixture(scope='function')
def login(client):
    """Log in through the API and return the token (or None)."""
    def _login(email: str, password: str = TEST_PASSWORD):
        response = client.post('/api/auth/login', json={
            'email': email,
            'password': password
        })
        if response.status_code == 200:
            return response.json.get('token')
        return None

    return _login


def _assert_rejection(response, status: int, code: str):
    """Check the shared rejection shape."""
    assert response.status_code == status, response.get_json()
    body = response.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert isinstance(body["error"]["message"], str) and body["error"]["message"]
    return body


@pytest.fixture(scope='function')
def assert_rejection():
    return _assert_rejection
