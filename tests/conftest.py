"""Shared fixtures: in-memory SQLite database, seeded roles, users and tokens."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import church_platform.models  # noqa: F401
from church_platform.core.rate_limiter import limiter
from church_platform.core.security import create_access_token, hash_password
from church_platform.db.base import Base
from church_platform.db.seeds.seed_roles import seed_roles
from church_platform.db.session import get_db
from church_platform.main import app
from church_platform.models import AuditLog, Role, User

PASSWORD = "password123"
_HASHED_PASSWORD = hash_password(PASSWORD)


@pytest.fixture
def engine():
    """One shared in-memory connection for every session in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def roles(db):
    seed_roles(db)
    return {role.name: role for role in db.query(Role).all()}


@pytest.fixture
def make_user(db, roles):
    """Factory for users; ``role_name=None`` creates a user without a role."""

    def _make(email, role_name="member", full_name=None, is_active=True):
        user = User(
            email=email,
            hashed_password=_HASHED_PASSWORD,
            full_name=full_name or email.split("@")[0].title(),
            role_id=roles[role_name].id if role_name else None,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


def auth_headers(user) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(make_user):
    return make_user("admin@church.test", "admin", full_name="Admin User")


@pytest.fixture
def member(make_user):
    return make_user("member@church.test", "member", full_name="Plain Member")


@pytest.fixture
def client(session_factory, roles):
    """TestClient wired to the test database for requests and audit writes."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    limiter.reset()
    previous_factory = app.state.session_factory
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.session_factory = previous_factory


@pytest.fixture
def audit_entries(db):
    """Fresh list of audit rows, oldest first."""

    def _entries(**filters):
        db.expire_all()
        query = db.query(AuditLog).filter_by(**filters)
        return query.order_by(AuditLog.id.asc()).all()

    return _entries


@pytest.fixture
def headers_for():
    return auth_headers
