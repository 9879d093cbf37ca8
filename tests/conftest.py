"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (calendar, entitlement, leave, users, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavetrack.auth.dependencies import create_access_token
from leavetrack.auth.policy import Actor
from leavetrack.common.constants import LeaveStatus, LeaveType, UserRole
from leavetrack.database import Base, get_db
from leavetrack.main import create_app
from leavetrack.notifications.service import drain_email_queue

# Import ALL model modules so every table is registered on Base.metadata
import leavetrack.common.audit  # noqa: F401
import leavetrack.entitlement.models  # noqa: F401
import leavetrack.holidays.models  # noqa: F401
import leavetrack.leave.models  # noqa: F401
import leavetrack.notifications.models  # noqa: F401
import leavetrack.users.models  # noqa: F401
import leavetrack.vacation_policy.models  # noqa: F401

from leavetrack.holidays.models import Holiday
from leavetrack.leave.models import LeaveRequest
from leavetrack.users.models import Team, User

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    # SQLAlchemy's documented SQLite SAVEPOINT workaround: disable pysqlite's
    # own BEGIN handling so savepoints nest inside a real transaction.
    dbapi_conn.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_emit_begin(conn):
    conn.exec_driver_sql("BEGIN")

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
async def _drain_emails():
    """Let queued notification emails settle before the loop closes."""
    yield
    await drain_email_queue()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavetrack.common.rate_limit import limiter

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


@pytest.fixture
async def fk_db() -> AsyncGenerator[AsyncSession, None]:
    """Session with SQLite foreign-key enforcement switched on, like PostgreSQL."""
    # The pragma is ignored inside a transaction, so it goes straight to the
    # driver connection, bypassing the BEGIN emitted by the "begin" listener
    async def _set_foreign_keys(on: bool) -> None:
        async with engine.connect() as conn:
            raw = await conn.get_raw_connection()
            await raw.driver_connection.execute(f"PRAGMA foreign_keys={'ON' if on else 'OFF'}")

    await _set_foreign_keys(True)
    async with TestSessionFactory() as session:
        yield session
        await session.rollback()
    await _set_foreign_keys(False)


# ── Dates ───────────────────────────────────────────────────────────

def future_monday(weeks: int = 0) -> date:
    """A Monday in March two years ahead, so requests are never in the past."""
    start = date(date.today().year + 2, 3, 1)
    monday = start + timedelta(days=(7 - start.weekday()) % 7)
    return monday + timedelta(weeks=weeks)


# ── Model factories ─────────────────────────────────────────────────

async def make_team(
    db: AsyncSession,
    *,
    name: Optional[str] = None,
    max_concurrent_leaves: Optional[int] = None,
) -> Team:
    team = Team(
        name=name or f"Team {uuid.uuid4().hex[:6]}",
        max_concurrent_leaves=max_concurrent_leaves,
    )
    db.add(team)
    await db.flush()
    return team


async def make_user(
    db: AsyncSession,
    *,
    role: UserRole = UserRole.employee,
    team: Optional[Team] = None,
    name: str = "Test User",
    email: Optional[str] = None,
    birth_date: Optional[date] = None,
    has_child: bool = False,
    employment_start_date: Optional[date] = date(2020, 1, 1),
    manual_leave_allowance_hours: Optional[Decimal] = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=email or f"user.{uuid.uuid4().hex[:8]}@example.com",
        name=name,
        role=role,
        team_id=team.id if team is not None and role != UserRole.admin else None,
        birth_date=birth_date,
        has_child=has_child,
        employment_start_date=employment_start_date,
        manual_leave_allowance_hours=manual_leave_allowance_hours,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def make_leave(
    db: AsyncSession,
    user: User,
    *,
    start_date: date,
    end_date: Optional[date] = None,
    type: LeaveType = LeaveType.annual_leave,
    status: LeaveStatus = LeaveStatus.pending,
    computed_hours: Decimal = Decimal("8"),
    reason: Optional[str] = None,
    manager_comment: Optional[str] = None,
) -> LeaveRequest:
    """Insert a request directly, bypassing lifecycle checks."""
    leave_req = LeaveRequest(
        user_id=user.id,
        type=type,
        start_date=start_date,
        end_date=end_date or start_date,
        status=status,
        computed_hours=computed_hours,
        reason=reason,
        manager_comment=manager_comment,
        created_by=user.id,
    )
    db.add(leave_req)
    await db.flush()
    return leave_req


async def make_holiday(
    db: AsyncSession,
    day: date,
    *,
    name: str = "Company Day",
    is_active: bool = True,
) -> Holiday:
    holiday = Holiday(date=day, name=name, is_company_holiday=True, is_active=is_active)
    db.add(holiday)
    await db.flush()
    return holiday


def actor_of(user: User) -> Actor:
    return Actor.from_user(user)


# ── Auth helpers ────────────────────────────────────────────────────

def auth_headers_for(user: User, *, expired: bool = False) -> dict[str, str]:
    """Bearer headers carrying a signed access token for *user*."""
    expires_in = timedelta(hours=-1) if expired else None
    token = create_access_token(user.id, expires_in=expires_in)
    return {"Authorization": f"Bearer {token}"}
