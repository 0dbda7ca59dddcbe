"""
Test Configuration and Fixtures
================================

Central configuration for pytest with all shared fixtures.

Features:
- SQLite in-memory database for testing
- TestClient setup
- Fixtures for organizations (with system roles), users and tokens
- Dependency overrides for database session
"""

import os
from typing import Callable, Generator, Iterable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set testing environment before importing app modules
os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only-min-32-chars"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"  # Enabled per test where needed
os.environ["PASSWORD_HASH_TIME_COST"] = "1"
os.environ["PASSWORD_HASH_MEMORY_COST"] = "1024"
os.environ["PASSWORD_HASH_PARALLELISM"] = "1"

from sentinel_auth.db.base import Base
from sentinel_auth.db.session import get_db
from sentinel_auth.main import app as main_app
from sentinel_auth.models import Organization, Role, User
from sentinel_auth.services.auth_service import AuthService
from sentinel_auth.services.organization_service import OrganizationService
from sentinel_auth.services.rbac_service import RBACService


DEFAULT_PASSWORD = "CorrectHorse42!"


# =====================================
# Database Configuration
# =====================================

# StaticPool keeps one connection so the in-memory database survives
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


# =====================================
# Database Fixtures
# =====================================

@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Fresh schema with the permission catalog seeded, per test.

    Yields:
        SQLAlchemy Session object
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    RBACService(session).seed_permission_catalog()
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """TestClient whose requests share the test's database session."""
    def override_get_db():
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db

    with TestClient(main_app) as test_client:
        yield test_client

    main_app.dependency_overrides.clear()


# =====================================
# Organization Fixtures
# =====================================

@pytest.fixture
def organization(db_session: Session) -> Organization:
    """Organization with Admin, Operator and Viewer system roles."""
    return OrganizationService(db_session).create_organization("Acme Ops")


@pytest.fixture
def second_organization(db_session: Session) -> Organization:
    """A second tenant for cross-tenant testing."""
    return OrganizationService(db_session).create_organization("Globex")


def role_by_name(db: Session, organization: Organization, name: str) -> Role:
    return db.scalar(
        select(Role).where(Role.organization_id == organization.id, Role.name == name)
    )


# =====================================
# User Fixtures
# =====================================

@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """
    Factory registering a user with system roles looked up by name.

    Usage:
        user = make_user("ops@acme.test", organization, roles=["Viewer"])
    """

    def _make_user(
        email: str,
        organization: Organization,
        roles: Iterable[str] = (),
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        role_ids = [role_by_name(db_session, organization, name).id for name in roles]
        return AuthService(db_session).register_user(
            email=email,
            password=password,
            organization_id=organization.id,
            role_ids=role_ids,
        )

    return _make_user


@pytest.fixture
def admin_user(make_user, organization: Organization) -> User:
    return make_user("admin@acme.test", organization, roles=["Admin"])


@pytest.fixture
def viewer_user(make_user, organization: Organization) -> User:
    return make_user("viewer@acme.test", organization, roles=["Viewer"])


@pytest.fixture
def plain_user(make_user, organization: Organization) -> User:
    """User without any role."""
    return make_user("nobody@acme.test", organization)


@pytest.fixture
def second_org_admin(make_user, second_organization: Organization) -> User:
    return make_user("admin@globex.test", second_organization, roles=["Admin"])


# =====================================
# Token Fixtures
# =====================================

@pytest.fixture
def token_for(db_session: Session) -> Callable[[User], str]:
    """Factory issuing an access token carrying the user's current roles."""

    def _token_for(user: User, expires_delta=None) -> str:
        service = AuthService(db_session)
        roles, permissions = service.rbac.get_user_roles_and_permissions(user.id)
        return service.generate_access_token(user, roles, permissions, expires_delta=expires_delta)

    return _token_for


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user: User, token_for) -> dict:
    return bearer(token_for(admin_user))


@pytest.fixture
def viewer_headers(viewer_user: User, token_for) -> dict:
    return bearer(token_for(viewer_user))
