"""
Pytest configuration and fixtures for PostRelay API tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from postrelay.auth import create_access_token
from postrelay.config import get_settings
from postrelay.database import Base, get_db
from postrelay.deps import get_broker, get_delivery_client, get_signature_verifier
from postrelay.exceptions import BrokerMessageNotFound, DeliveryFailed
from postrelay.main import app
from postrelay.models.social_account import SocialAccount
from postrelay.worker.delivery import DeliveryClient, DeliveryReceipt, TokenStore
from postrelay.worker.signature import SignatureVerifier, create_signature
from postrelay.worker.store import JobStore

SIGNING_KEY = "sig_current_7f3a9c2e5b8d1f4a6c9e2b5d8f1a4c7e"
NEXT_SIGNING_KEY = "sig_next_2b5d8f1a4c7e0a3c6e9b2d5f8a1c4e7b"
CALLBACK_URL = get_settings().callback_url

# Use in-memory SQLite for tests with shared connection
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None


def get_test_db():
    """Get the shared test database session."""
    yield _test_session


# ============================================================
# FAKE COLLABORATORS
# ============================================================

class FakeBroker:
    """In-memory broker: pending messages keyed by message id"""

    def __init__(self):
        self.published = []
        self.deleted = []
        self.pending = {}
        self.publish_error = None
        self.delete_error = None
        self._seq = 0

    def publish(self, url, body, delay):
        if self.publish_error:
            raise self.publish_error
        self._seq += 1
        message_id = f"msg_{self._seq}"
        self.published.append({"url": url, "body": body, "delay": delay, "message_id": message_id})
        self.pending[message_id] = body
        return message_id

    def delete(self, message_id):
        self.deleted.append(message_id)
        if self.delete_error:
            raise self.delete_error
        if message_id not in self.pending:
            raise BrokerMessageNotFound(f"Message {message_id} not found", status=404)
        del self.pending[message_id]

    def release(self, message_id) -> bytes:
        """Hand a due message to the callback, as the broker does when the delay elapses"""
        body = self.pending.pop(message_id)
        return json.dumps(body).encode()


class FakeDelivery(DeliveryClient):
    def __init__(self):
        self.calls = []
        self.error = None

    def deliver(self, platform, content, access_token, job_id=None):
        self.calls.append({
            "platform": platform,
            "content": content,
            "access_token": access_token,
            "job_id": job_id,
        })
        if self.error:
            raise DeliveryFailed(self.error)
        return DeliveryReceipt(platform=platform, post_id="platform-post-1")


class StaticTokenStore(TokenStore):
    def __init__(self, tokens=None):
        self.tokens = tokens or {}

    def get_access_token(self, owner_id, platform):
        token = self.tokens.get((owner_id, platform))
        if not token:
            raise DeliveryFailed(f"No connected {platform} account found")
        return token


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    Base.metadata.create_all(bind=engine)
    _test_session = TestingSessionLocal()
    app.dependency_overrides[get_db] = get_test_db

    yield _test_session

    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def store(db):
    return JobStore(db, lease_seconds=300)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def verifier():
    return SignatureVerifier(SIGNING_KEY, NEXT_SIGNING_KEY, callback_url=CALLBACK_URL)


@pytest.fixture
def sign():
    """Produce a valid broker signature for a body"""
    def _sign(body: bytes, key: str = SIGNING_KEY, url: str = CALLBACK_URL, ttl_seconds: int = 300) -> str:
        return create_signature(body, key, url, ttl_seconds=ttl_seconds)
    return _sign


@pytest.fixture(scope="function")
def client(db, broker, delivery, verifier):
    """Create a test client wired to the fake collaborators."""
    app.dependency_overrides[get_broker] = lambda: broker
    app.dependency_overrides[get_delivery_client] = lambda: delivery
    app.dependency_overrides[get_signature_verifier] = lambda: verifier
    with TestClient(app) as c:
        yield c


@pytest.fixture
def owner_id():
    return "user-8c1d"


@pytest.fixture
def auth_headers(owner_id):
    """Get auth headers for the test owner."""
    token = create_access_token({"sub": owner_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def linked_account(db, owner_id):
    """Twitter account linked for the test owner."""
    account = SocialAccount(owner_id=owner_id, platform="twitter", access_token="tw-access-token")
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def future_time():
    """A minute from the real clock, for tests going through the API"""
    return datetime.now(timezone.utc) + timedelta(seconds=60)
