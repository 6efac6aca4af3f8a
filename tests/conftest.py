"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test (StaticPool, shared connection)
- Users for every role and bearer-token headers
- HTTPX AsyncClient bound to the app with the test session
- Fake delivery channels and a stubbed classifier
"""
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ["TESTING"] = "1"
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["AI_API_KEY"] = ""
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["DEV_SECRET"] = "test-dev-secret"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="hostelpal-test-")
for _key in (
    "FCM_SERVER_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
    "RESEND_API_KEY",
    "EMAIL_FROM",
):
    os.environ[_key] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hostelpal.core.deps import get_db
from hostelpal.core.security import create_access_token
from hostelpal.core.session_store import InMemorySessionStore
from hostelpal.core.websocket import ConnectionManager
from hostelpal.db.base import Base
from hostelpal.db.enums import ClassificationSource, DeliveryChannel, Role
from hostelpal.db.enums import TicketCategory, TicketPriority
from hostelpal.db.models import User
from hostelpal.main import app
from hostelpal.routers import websocket as websocket_router
from hostelpal.services import (
    classifier_service,
    delivery_channels,
    notification_service,
    ticket_events,
)
from hostelpal.services.classifier_service import CategoryOutcome, PriorityOutcome


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory, monkeypatch) -> Generator[Session, None, None]:
    """Session for the test and the app; delivery tasks get their own."""
    monkeypatch.setattr(notification_service, "_delivery_session_factory", session_factory)
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def live_manager(monkeypatch) -> ConnectionManager:
    """Fresh connection registry per test."""
    manager = ConnectionManager(InMemorySessionStore())
    monkeypatch.setattr(ticket_events, "manager", manager)
    monkeypatch.setattr(websocket_router, "manager", manager)
    return manager


# =============================================================================
# Users
# =============================================================================

def _make_user(db: Session, role: Role, **overrides) -> User:
    suffix = uuid.uuid4().hex[:8]
    values = {
        "name": f"{role.value.title()} {suffix}",
        "email": f"{role.value}-{suffix}@hostel.test",
        "role": role.value,
        "fcm_token": f"fcm-{suffix}",
        "phone_number": f"+1555{suffix[:7]}",
    }
    values.update(overrides)
    user = User(**values)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db: Session):
    def factory(role: Role, **overrides) -> User:
        return _make_user(db, role, **overrides)

    return factory


@pytest.fixture
def student(db: Session) -> User:
    return _make_user(db, Role.STUDENT, room_number="A-101", hostel_block="A")


@pytest.fixture
def other_student(db: Session) -> User:
    return _make_user(db, Role.STUDENT, room_number="B-204", hostel_block="B")


@pytest.fixture
def staff(db: Session) -> User:
    return _make_user(db, Role.STAFF)


@pytest.fixture
def admin(db: Session) -> User:
    return _make_user(db, Role.ADMIN)


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.role, user.token_version)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient sharing the test session; pass auth_headers(user) per call."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    await notification_service.wait_for_deliveries()
    app.dependency_overrides.clear()


# =============================================================================
# Delivery channel fakes
# =============================================================================

class FakeChannel(delivery_channels.Channel):
    """Records sends; raises for targets listed in ``fail_targets``."""

    def __init__(self, name: DeliveryChannel, target_attr: str):
        self.name = name
        self.target_attr = target_attr
        self.sent: list[dict] = []
        self.fail_targets: set[str] = set()

    def target_for(self, user: User) -> str | None:
        return getattr(user, self.target_attr) or None

    async def send(self, target, title, message, subject=None) -> None:
        if target in self.fail_targets:
            raise RuntimeError("provider unavailable")
        self.sent.append(
            {"target": target, "title": title, "message": message, "subject": subject}
        )


@dataclass
class FakeChannels:
    push: FakeChannel = field(default_factory=lambda: FakeChannel(DeliveryChannel.PUSH, "fcm_token"))
    sms: FakeChannel = field(default_factory=lambda: FakeChannel(DeliveryChannel.SMS, "phone_number"))
    email: FakeChannel = field(default_factory=lambda: FakeChannel(DeliveryChannel.EMAIL, "email"))

    def as_dict(self) -> dict:
        return {
            DeliveryChannel.PUSH: self.push,
            DeliveryChannel.SMS: self.sms,
            DeliveryChannel.EMAIL: self.email,
        }


@pytest.fixture
def fake_channels(monkeypatch) -> FakeChannels:
    channels = FakeChannels()
    monkeypatch.setattr(delivery_channels, "get_channels", channels.as_dict)
    return channels


# =============================================================================
# Classifier stub
# =============================================================================

@dataclass
class ClassifierStub:
    category: TicketCategory = TicketCategory.OTHER
    category_confidence: float = 0.5
    priority: TicketPriority = TicketPriority.MEDIUM
    priority_confidence: float = 0.5
    keywords: list[str] = field(default_factory=list)
    reasoning: str = "stubbed"
    classify_calls: list[tuple] = field(default_factory=list)
    priority_calls: list[tuple] = field(default_factory=list)

    async def classify(self, title, description):
        self.classify_calls.append((title, description))
        return CategoryOutcome(
            category=self.category,
            confidence=self.category_confidence,
            keywords=list(self.keywords),
            source=ClassificationSource.AI,
        )

    async def predict_priority(self, title, description, category):
        self.priority_calls.append((title, description, category))
        return PriorityOutcome(
            priority=self.priority,
            confidence=self.priority_confidence,
            reasoning=self.reasoning,
            source=ClassificationSource.AI,
        )


@pytest.fixture
def classifier(monkeypatch) -> ClassifierStub:
    stub = ClassifierStub()
    monkeypatch.setattr(classifier_service, "classify", stub.classify)
    monkeypatch.setattr(classifier_service, "predict_priority", stub.predict_priority)
    return stub


@pytest.fixture
def headers_for():
    """Bearer-token headers for a user."""
    return auth_headers
