"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (tables created once, rows cleared after each test)
- User / child factories and an invite-acceptance helper for grants
- HTTPX AsyncClient factory with session cookie and CSRF header
"""
import os
import uuid
from contextlib import asynccontextmanager
from typing import Generator

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["RESEND_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from careteam.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from careteam.core.security import create_session_token
from careteam.db.base import Base
from careteam.db.enums import Role
from careteam.db.models import AccessGrant, ChildProfile, User
from careteam.db.session import SessionLocal, engine
from careteam.main import app


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Database session for one test.

    App code commits for real (routers own their transactions), so
    isolation comes from clearing every table afterwards.
    """
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_user(db: Session):
    def _make(role: Role = Role.CLINICIAN, email: str | None = None, name: str | None = None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
            name=name or f"{role.value.title()} User",
            role=role.value,
            token_version=1,
            is_active=True,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_child(db: Session):
    def _make(guardian: User, name: str = "Sam") -> ChildProfile:
        child = ChildProfile(id=uuid.uuid4(), name=name, guardian_id=guardian.id)
        db.add(child)
        db.commit()
        return child
    return _make


@pytest.fixture
def parent(make_user) -> User:
    return make_user(Role.PARENT, name="Pat Parent")


@pytest.fixture
def clinician(make_user) -> User:
    return make_user(Role.CLINICIAN, name="Dr. Casey")


@pytest.fixture
def support_worker(make_user) -> User:
    return make_user(Role.SUPPORT, name="Sky Support")


@pytest.fixture
def admin(make_user) -> User:
    return make_user(Role.ADMIN, name="Ada Admin")


@pytest.fixture
def child(make_child, parent) -> ChildProfile:
    return make_child(parent)


@pytest.fixture
def grant_access(db: Session):
    """Grant access the only way the app does: invite, then accept."""
    from careteam.services import invite_service

    def _grant(child: ChildProfile, professional: User, scopes: list[str]) -> AccessGrant:
        invite = invite_service.create_invite(
            db,
            sender_id=child.guardian_id,
            sender_role=Role.PARENT,
            child_id=child.id,
            recipient_email=professional.email,
            scopes=scopes,
        )
        db.commit()
        grant = invite_service.accept_invite(db, invite.token, professional)
        db.commit()
        return grant
    return _grant


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
def client_for(db: Session):
    """
    Factory for AsyncClients bound to the test session.

    Usage:
        async with client_for(parent) as client:
            await client.get(...)
    """
    @asynccontextmanager
    async def _client(user: User | None = None, csrf: bool = True):
        def override_get_db():
            yield db

        app.dependency_overrides[get_db] = override_get_db

        cookies = {}
        if user is not None:
            cookies[COOKIE_NAME] = create_session_token(
                user_id=user.id,
                role=user.role,
                token_version=user.token_version,
            )
        headers = {CSRF_HEADER: CSRF_HEADER_VALUE} if csrf else {}

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies,
            headers=headers,
        ) as c:
            yield c

        app.dependency_overrides.clear()
    return _client
