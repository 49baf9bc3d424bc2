"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database with a savepoint per test (rollback after each test)
- Customer / admin profiles and session tokens
- HTTPX AsyncClient against the app, with triage dispatch captured
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings singleton) is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["REDIS_URL"] = ""
os.environ["AI_SERVICE_SECRET"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.orm import Session

from supportdesk.core.deps import COOKIE_NAME, get_db
from supportdesk.core.security import create_session_token
from supportdesk.db.base import Base
from supportdesk.db.enums import Role
from supportdesk.db.models import Profile
from supportdesk.db.session import SessionLocal, engine
from supportdesk.main import app
from supportdesk.schemas.ai import TriageRequest
from supportdesk.services.triage_dispatch import get_triage_dispatcher


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

# pysqlite does not emit BEGIN itself; take over so SAVEPOINT works.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


Base.metadata.create_all(engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Database session joined to an outer transaction.

    App code may call commit()/rollback(); those only touch a savepoint, and
    the outer transaction is rolled back when the test ends.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


def _make_profile(db: Session, role: Role) -> Profile:
    profile = Profile(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        role=role,
    )
    db.add(profile)
    db.flush()
    return profile


@pytest.fixture(scope="function")
def customer(db: Session) -> Profile:
    return _make_profile(db, Role.CUSTOMER)


@pytest.fixture(scope="function")
def other_customer(db: Session) -> Profile:
    return _make_profile(db, Role.CUSTOMER)


@pytest.fixture(scope="function")
def admin(db: Session) -> Profile:
    return _make_profile(db, Role.ADMIN)


# =============================================================================
# Triage capture
# =============================================================================

@dataclass
class RecordingDispatcher:
    """Stands in for TriageDispatcher; records requests instead of calling out."""
    requests: list[TriageRequest] = field(default_factory=list)

    def dispatch(self, request: TriageRequest):
        self.requests.append(request)
        return None


@pytest.fixture(scope="function")
def triage_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# =============================================================================
# Client Fixtures
# =============================================================================

def token_for(profile: Profile) -> str:
    return create_session_token(profile.id, profile.role.value)


@pytest.fixture(scope="function")
def override_app(db: Session, triage_dispatcher: RecordingDispatcher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_triage_dispatcher] = lambda: triage_dispatcher
    yield app
    app.dependency_overrides.clear()


async def _client(cookie: str | None = None) -> AsyncClient:
    cookies = {COOKIE_NAME: cookie} if cookie else None
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", cookies=cookies)


@pytest.fixture(scope="function")
async def client(override_app) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client."""
    async with await _client() as c:
        yield c


@pytest.fixture(scope="function")
async def customer_client(override_app, customer: Profile) -> AsyncGenerator[AsyncClient, None]:
    async with await _client(token_for(customer)) as c:
        yield c


@pytest.fixture(scope="function")
async def other_customer_client(
    override_app, other_customer: Profile
) -> AsyncGenerator[AsyncClient, None]:
    async with await _client(token_for(other_customer)) as c:
        yield c


@pytest.fixture(scope="function")
async def admin_client(override_app, admin: Profile) -> AsyncGenerator[AsyncClient, None]:
    async with await _client(token_for(admin)) as c:
        yield c
