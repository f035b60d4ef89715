"""
Test fixtures for the Token Lifecycle service.

This module provides pytest fixtures for database, clock, service and
application testing, including in-memory database setup, a controllable
clock, a test client, and test users.
"""
import os

# Must be set before the settings singleton is created
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("LEDGER_REAP_INTERVAL_SECONDS", "0")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from token_lifecycle.auth import build_auth_service
from token_lifecycle.config import Settings
from token_lifecycle.database import Database
from token_lifecycle.dependencies import get_access_gate, get_auth_service
from token_lifecycle.gate import AccessGate
from token_lifecycle.models import UserRole
from token_lifecycle.token import timestamp_to_datetime
from main import app

TEST_PASSWORD = "password123"
ADMIN_PASSWORD = "adminpass123"


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def utcnow(self):
        return timestamp_to_datetime(self.now)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        self.now += seconds + timedelta(**kwargs).total_seconds()


@pytest.fixture(scope="function")
def clock():
    """A clock frozen at a fixed instant."""
    return FakeClock()


@pytest.fixture(scope="session")
def test_settings():
    """Settings with fixed, distinct signing secrets and cheap hashing."""
    return Settings(
        JWT_ACCESS_SECRET_KEY="test-access-secret-0123456789abcdef",
        JWT_REFRESH_SECRET_KEY="test-refresh-secret-0123456789abcdef",
        ACCESS_TOKEN_EXPIRE_MINUTES=15,
        REFRESH_TOKEN_EXPIRE_DAYS=7,
        PASSWORD_HASH_ROUNDS=4,
        DATABASE_URL="sqlite://",
        DATABASE_TIMEOUT_SECONDS=5,
    )


@pytest.fixture(scope="function")
def database():
    """Create an in-memory test database shared by every session."""
    db = Database("sqlite://", echo=False, timeout_seconds=5, poolclass=StaticPool)
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture(scope="function")
def file_database(tmp_path):
    """File-backed database for tests that hit it from several threads."""
    db = Database(f"sqlite:///{tmp_path / 'race.db'}", echo=False, timeout_seconds=5)
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture(scope="function")
def service(database, test_settings, clock):
    """Authentication service wired to the in-memory database and fake clock."""
    return build_auth_service(database, test_settings, clock=clock)


@pytest.fixture(scope="function")
def store(service):
    return service.store


@pytest.fixture(scope="function")
def ledger(service):
    return service.ledger


@pytest.fixture(scope="function")
def gate(test_settings, clock):
    return AccessGate(test_settings, clock=clock)


@pytest.fixture(scope="function")
def test_user(store):
    """Create a regular active user."""
    return store.create_identity("Test User", "test@example.com", store.hash_secret(TEST_PASSWORD))


@pytest.fixture(scope="function")
def test_admin(store):
    """Create an admin user."""
    return store.create_identity(
        "Admin",
        "admin@example.com",
        store.hash_secret(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
    )


@pytest.fixture(scope="function")
def inactive_user(store):
    """Create a deactivated user."""
    identity = store.create_identity("Inactive User", "inactive@example.com", store.hash_secret(TEST_PASSWORD))
    return store.set_active(identity.id, False)


@pytest.fixture(scope="function")
def client(service, gate):
    """Create a FastAPI test client bound to the test service."""
    app.dependency_overrides[get_auth_service] = lambda: service
    app.dependency_overrides[get_access_gate] = lambda: gate

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def user_tokens(service, test_user):
    """Session of the regular test user."""
    return service.login(test_user.email, TEST_PASSWORD).tokens


@pytest.fixture(scope="function")
def admin_tokens(service, test_admin):
    """Session of the admin user."""
    return service.login(test_admin.email, ADMIN_PASSWORD).tokens
