"""Pytest configuration and fixtures for the consent API test suite.

Provides:
- A fresh SQLite database file per test (aiosqlite, NullPool)
- Dependency overrides for the DB session, audit logger, mailer and export storage
- Disabled rate limiting
- Model factory fixtures for Subscriber, IssuedToken, DataRequest and AdminUser
"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from consent_api.core.deps import get_audit_logger, get_db, get_email_service, get_export_storage
from consent_api.core.rate_limit import limiter
from consent_api.core.security import (
    create_admin_token,
    generate_token,
    hash_email,
    hash_password,
    normalize_email,
)
from consent_api.main import app
from consent_api.models import (
    AdminRole,
    AdminUser,
    AuditAction,
    AuditLog,
    Base,
    DataRequest,
    DataRequestStatus,
    DataRequestType,
    IssuedToken,
    Subscriber,
    TokenPurpose,
)
from consent_api.services.audit_service import AuditContext, AuditLogger
from consent_api.services.email_service import EmailService
from consent_api.services.export_storage import ExportStorage
from consent_api.services.token_service import TokenIssuer

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_EMAIL = "ada@example.com"
TEST_IP = "203.0.113.7"
ADMIN_PASSWORD = "correct-horse-battery-staple"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite file database with all tables created.

    A file rather than ``:memory:`` so the audit logger's separate sessions
    see the same data. NullPool keeps connections from outliving the test loop.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'consent_test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for test setup (factory fixtures) and direct service calls."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def audit_logger(session_factory: async_sessionmaker[AsyncSession]) -> AuditLogger:
    return AuditLogger(session_factory)


@pytest.fixture
def mailer() -> AsyncMock:
    """EmailService double; every send is an AsyncMock returning a fake id."""
    mock = AsyncMock(spec=EmailService)
    mock.send_verification_email.return_value = "email-id"
    mock.send_welcome_email.return_value = "email-id"
    mock.send_data_request_verification.return_value = "email-id"
    mock.send_export_ready.return_value = "email-id"
    return mock


@pytest.fixture
def storage(tmp_path: Path) -> ExportStorage:
    return ExportStorage(tmp_path / "exports")


@pytest.fixture
def ctx() -> AuditContext:
    return AuditContext(ip_address=TEST_IP, user_agent="pytest", request_id="test-request-id")


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    audit_logger: AuditLogger,
    mailer: AsyncMock,
    storage: ExportStorage,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with DB, audit, mailer and storage overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_audit_logger] = lambda: audit_logger
    app.dependency_overrides[get_email_service] = lambda: mailer
    app.dependency_overrides[get_export_storage] = lambda: storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Forwarded-For": TEST_IP},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Read helpers (fresh session each call, so nothing comes from a stale identity map)
# ---------------------------------------------------------------------------


@pytest.fixture
def reload(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Load one row by primary key in a new session."""

    async def _reload(model: type[Base], id: UUID) -> Any:
        async with session_factory() as s:
            return await s.get(model, id)

    return _reload


@pytest.fixture
def audit_entries(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """All audit entries, oldest first, optionally filtered by action."""

    async def _entries(action: AuditAction | None = None) -> list[AuditLog]:
        stmt = select(AuditLog).order_by(AuditLog.created_at)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action.value)
        async with session_factory() as s:
            return list((await s.execute(stmt)).scalars().all())

    return _entries


@pytest.fixture
def latest_token(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Most recently issued token string for an owner and purpose."""

    async def _latest(owner_id: UUID, purpose: TokenPurpose) -> str | None:
        stmt = (
            select(IssuedToken.token)
            .where(IssuedToken.owner_id == owner_id, IssuedToken.purpose == purpose)
            .order_by(IssuedToken.issued_at.desc())
            .limit(1)
        )
        async with session_factory() as s:
            return (await s.execute(stmt)).scalar_one_or_none()

    return _latest


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def subscriber_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Subscriber instances in the test database."""

    async def _create(
        *,
        email: str = TEST_EMAIL,
        is_verified: bool = False,
        is_active: bool = True,
        source: str = "website",
        verification_sent_at: datetime | None = None,
    ) -> Subscriber:
        now = datetime.now(UTC)
        subscriber = Subscriber(
            email=normalize_email(email),
            email_hash=hash_email(email),
            consent_given=True,
            consent_timestamp=now,
            consent_ip_address=TEST_IP,
            consent_version="1.0",
            is_verified=is_verified,
            is_active=is_active,
            verification_sent_at=verification_sent_at or now,
            verified_at=now if is_verified else None,
            unsubscribed_at=None if is_active else now,
            source=source,
        )
        db_session.add(subscriber)
        await db_session.commit()
        await db_session.refresh(subscriber)
        return subscriber

    return _create


@pytest.fixture
def token_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates IssuedToken rows with controllable timestamps."""

    async def _create(
        *,
        owner_id: UUID,
        purpose: TokenPurpose,
        issued_at: datetime | None = None,
        consumed_at: datetime | None = None,
    ) -> IssuedToken:
        issued_at = issued_at or datetime.now(UTC)
        window = TokenIssuer.expiry_for(purpose)
        token = IssuedToken(
            token=generate_token(),
            purpose=purpose,
            owner_id=owner_id,
            issued_at=issued_at,
            expires_at=issued_at + window if window else None,
            consumed_at=consumed_at,
        )
        db_session.add(token)
        await db_session.commit()
        await db_session.refresh(token)
        return token

    return _create


@pytest.fixture
def data_request_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates DataRequest instances."""

    async def _create(
        *,
        email: str = TEST_EMAIL,
        type: DataRequestType = DataRequestType.EXPORT,
        status: DataRequestStatus = DataRequestStatus.PENDING,
        subscriber_id: UUID | None = None,
        verification_sent_at: datetime | None = None,
        export_id: UUID | None = None,
        export_expires_at: datetime | None = None,
    ) -> DataRequest:
        request = DataRequest(
            subscriber_id=subscriber_id,
            type=type,
            status=status,
            request_email=normalize_email(email),
            request_email_hash=hash_email(email),
            verification_sent_at=verification_sent_at or datetime.now(UTC),
            export_id=export_id,
            export_expires_at=export_expires_at,
        )
        db_session.add(request)
        await db_session.commit()
        await db_session.refresh(request)
        return request

    return _create


@pytest.fixture
def admin_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates AdminUser instances with a known password."""

    async def _create(
        *,
        email: str = "admin@example.com",
        role: AdminRole = AdminRole.ADMIN,
        password: str = ADMIN_PASSWORD,
        is_active: bool = True,
    ) -> AdminUser:
        admin = AdminUser(
            email=email,
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(admin)
        await db_session.commit()
        await db_session.refresh(admin)
        return admin

    return _create


@pytest.fixture
def admin_headers() -> Callable[[AdminUser], dict[str, str]]:
    """Bearer header for an admin."""

    def _headers(admin: AdminUser) -> dict[str, str]:
        token = create_admin_token(str(admin.id), admin.email, admin.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
