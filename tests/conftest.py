"""
Pytest fixtures for TaskGate tests.

Each test gets its own SQLite database file so no server is required.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

TEST_SECRET = "test-signing-secret-that-is-long-enough-0123456789"

# Ensure test config is set before importing taskgate modules.
os.environ.setdefault("TASKGATE_ENV", "development")
os.environ.setdefault("TASKGATE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TASKGATE_JWT_SECRET", TEST_SECRET)
os.environ.setdefault("TASKGATE_BCRYPT_ROUNDS", "4")

from taskgate.audit.recorder import AuditRecorder
from taskgate.auth.context import RequestContext
from taskgate.auth.passwords import hash_password
from taskgate.auth.token import TokenService
from taskgate.config import settings
from taskgate.db.base import Base
from taskgate.db.repositories import TenantRepository, UserRepository
from taskgate.engine.core import TaskGateEngine
from taskgate.models import Principal, Tenant, UserProfile
import taskgate.auth.models  # noqa: F401
import taskgate.db.tables  # noqa: F401

DEFAULT_PASSWORD = "password123"


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskgate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def recorder(session_factory):
    """Audit recorder writing to the test database."""
    return AuditRecorder(session_factory)


@pytest.fixture
async def session(session_factory, recorder):
    """
    Provide a database session per test.

    The session is released before outstanding audit writes are drained;
    SQLite allows one writer at a time.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()
    await recorder.drain(timeout=10.0)


@pytest.fixture
def tokens():
    return TokenService(secret=TEST_SECRET)


@pytest.fixture
def engine(session, recorder):
    """TaskGate engine bound to the test session."""
    return TaskGateEngine(session, recorder)


class Seeder:
    """Creates tenants and users directly through the repositories."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.tenants = TenantRepository(session)
        self.users = UserRepository(session)

    async def tenant(self, name: str = "Acme Corp", slug: str | None = None) -> Tenant:
        return await self.tenants.create(name=name, slug=slug or name.lower().replace(" ", "-"))

    async def user(
        self,
        tenant: Tenant,
        email: str,
        roles: tuple[str, ...] = ("USER",),
        active: bool = True,
        password: str = DEFAULT_PASSWORD,
        first_name: str = "Test",
        last_name: str = "User",
    ) -> UserProfile:
        user = await self.users.create(
            tenant_id=tenant.id,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            roles=roles,
        )
        if not active:
            user = await self.users.update_fields(tenant.id, user.id, is_active=False)
        return user


@pytest.fixture
def seed(session):
    return Seeder(session)


def context_for(user: UserProfile, client_ip: str | None = "127.0.0.1") -> RequestContext:
    """Request context for an already-authenticated user."""
    return RequestContext(
        tenant_id=user.tenant_id, principal=Principal.from_profile(user), client_ip=client_ip
    )


@pytest.fixture
def ctx_for():
    return context_for


@pytest.fixture
async def client(session_factory, recorder):
    """
    Async test client with overridden dependencies.

    Every request runs on its own session, like in production. Audit writes
    of a request are drained once its session has committed so that the
    next request never races them for the SQLite write lock.
    """
    from taskgate.api.deps import get_audit_recorder, get_db_session, get_token_service
    from taskgate.main import app

    async def override_get_db_session():
        try:
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        finally:
            await recorder.drain(timeout=10.0)

    async def override_get_audit_recorder():
        return recorder

    async def override_get_token_service():
        return TokenService(
            secret=TEST_SECRET,
            algorithm=settings.jwt_algorithm,
        )

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_audit_recorder] = override_get_audit_recorder
    app.dependency_overrides[get_token_service] = override_get_token_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await recorder.drain(timeout=10.0)
