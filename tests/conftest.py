"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Iterable

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_ledger.common.constants import LeaveStatus, LeaveType, UserRole
from leave_ledger.common.rate_limit import limiter
from leave_ledger.config import settings
from leave_ledger.database import Base, get_db
from leave_ledger.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import leave_ledger.attachments.models  # noqa: F401
import leave_ledger.auth.models  # noqa: F401
import leave_ledger.common.audit  # noqa: F401
import leave_ledger.leave.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Clear the in-memory limiter storage so counts never leak across tests."""
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def dt(value: str) -> datetime:
    """Shorthand for wall-clock timestamps in the API format."""
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")


async def seed_user(
    db: AsyncSession,
    *,
    username: str | None = None,
    roles: Iterable[UserRole] = (),
    is_active: bool = True,
):
    """Insert a user with the given active roles."""
    from leave_ledger.auth.models import RoleAssignment, User

    username = username or f"user-{uuid.uuid4().hex[:8]}"
    user = User(
        id=uuid.uuid4(),
        username=username,
        email=f"{username}@example.com",
        display_name=username.title(),
        is_active=is_active,
    )
    db.add(user)
    await db.flush()

    for role in roles:
        db.add(RoleAssignment(user_id=user.id, role=role, is_active=True))
    await db.flush()
    return user


async def seed_grant(
    db: AsyncSession,
    user_id: uuid.UUID,
    amount: str,
    leave_type: LeaveType = LeaveType.annual,
):
    """Credit ``amount`` units straight into the ledger."""
    from leave_ledger.leave.ledger import LedgerStore
    from leave_ledger.common.constants import LedgerAction

    return await LedgerStore.append(
        db,
        user_id=user_id,
        leave_type=leave_type,
        amount=Decimal(amount),
        action=LedgerAction.grant,
    )


async def seed_leave_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    start: str = "2026-03-02 09:00:00",
    end: str = "2026-03-02 18:00:00",
    amount: str = "1.00",
    leave_type: LeaveType = LeaveType.annual,
    status: LeaveStatus = LeaveStatus.pending,
    approver_id: uuid.UUID | None = None,
):
    """Insert a leave request row directly, bypassing the workflow checks."""
    from leave_ledger.leave.models import LeaveRequest

    leave_req = LeaveRequest(
        id=uuid.uuid4(),
        user_id=user_id,
        type=leave_type,
        start_date=dt(start),
        end_date=dt(end),
        amount=Decimal(amount),
        reason="Seeded for tests",
        attachment_refs=[],
        status=status,
        approver_id=approver_id,
    )
    db.add(leave_req)
    await db.flush()
    return leave_req


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def headers_for(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    revoked: bool = False,
) -> dict[str, str]:
    """Return Bearer auth headers with a session persisted in the DB."""
    from leave_ledger.auth.models import UserSession

    token = create_access_token(user_id)
    db.add(
        UserSession(
            id=uuid.uuid4(),
            user_id=user_id,
            token_hash=hashlib.sha256(token.encode()).hexdigest(),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            is_revoked=revoked,
        )
    )
    await db.flush()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def employee(db):
    return await seed_user(db, username="worker", roles=[UserRole.employee])


@pytest.fixture
async def approver(db):
    return await seed_user(db, username="approver", roles=[UserRole.approver])


@pytest.fixture
async def hr_admin(db):
    return await seed_user(db, username="hradmin", roles=[UserRole.hr_admin])
