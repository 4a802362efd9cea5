"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- A controllable clock for lockout and expiry tests
- A recording notifier instead of Celery/SES
- FastAPI test client with overridden dependencies
"""

import os

# Must be set before pulse.core.config is imported
os.environ.setdefault("DATABASE_URI", "sqlite://")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pulse.core.database import Base, get_db, utcnow
from pulse.core.deps import get_clock, get_notifier, get_password_hasher, get_token_issuer
from pulse.core.security import PasswordHasher
from pulse.core.tokens import TokenIssuer
from pulse.crud.sessions import SessionRegistry
from pulse.crud.single_use_tokens import SingleUseTokenRegistry
from pulse.crud.users import CredentialStore
from pulse.models.single_use_token import TokenPurpose
from pulse.models.user import UserRole, UserStatus
from pulse.services.auth_service import AuthService
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "Abcdef1!"
ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class SentNotification:
    recipient: str
    token: str
    purpose: TokenPurpose


class RecordingNotifier:
    """Stands in for EmailNotifier; keeps every hand-off in memory."""

    def __init__(self):
        self.sent: List[SentNotification] = []

    def send(self, recipient, token, purpose, user_name=None) -> bool:
        self.sent.append(SentNotification(recipient=recipient, token=token, purpose=purpose))
        return True

    def last_token(self, purpose: TokenPurpose) -> str:
        for notification in reversed(self.sent):
            if notification.purpose == purpose:
                return notification.token
        raise AssertionError(f"no {purpose.value} notification was sent")


@pytest.fixture
def db_session():
    """
    Create a fresh database for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def issuer():
    # JWT expiry is checked against the real time, so the issuer keeps the real clock
    return TokenIssuer(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET, clock=utcnow)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def credential_store(db_session, hasher, clock):
    return CredentialStore(db_session, hasher, clock=clock)


@pytest.fixture
def token_registry(db_session, clock):
    return SingleUseTokenRegistry(db_session, clock=clock)


@pytest.fixture
def session_registry(db_session, clock):
    return SessionRegistry(db_session, clock=clock)


@pytest.fixture
def auth_service(db_session, hasher, issuer, notifier, clock):
    return AuthService(db_session, hasher=hasher, issuer=issuer, notifier=notifier, clock=clock)


@pytest.fixture
def make_user(credential_store, db_session):
    """Factory for committed users (ACTIVE by default)."""
    def _make(
        email: str = "alice@example.com",
        password: str = DEFAULT_PASSWORD,
        name: str = "Alice",
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
    ):
        user = credential_store.create_user(name=name, email=email, password=password, role=role, status=status)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def client(db_session, hasher, issuer, notifier, clock):
    """
    FastAPI test client with overridden dependencies.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_password_hasher] = lambda: hasher
    app.dependency_overrides[get_token_issuer] = lambda: issuer
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log in through the API and return (response json, auth headers)."""
    def _login(email: str = "alice@example.com", password: str = DEFAULT_PASSWORD, user_agent: str = "pytest"):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": password},
            headers={"User-Agent": user_agent},
        )
        assert response.status_code == 200, response.text
        data = response.json()
        return data, {"Authorization": f"Bearer {data['access_token']}"}
    return _login
