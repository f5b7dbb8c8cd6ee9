"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from laborhub.attendance.shifts import LOCAL_TZ
from laborhub.common.constants import ActorRole, ShiftLabel
from laborhub.config import settings
from laborhub.database import Base, get_db
from laborhub.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import laborhub.attendance.models  # noqa: F401
import laborhub.common.audit  # noqa: F401
import laborhub.workers.models  # noqa: F401

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


# The store relies on SAVEPOINTs; let SQLAlchemy own BEGIN so they nest properly
@event.listens_for(engine.sync_engine, "connect")
def _sqlite_manual_transactions(dbapi_conn, connection_record):
    dbapi_conn.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_begin(conn):
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
    """Async HTTP client wired to the test app.

    The in-memory database is a single shared connection: commit the ``db``
    fixture's work before issuing requests.
    """
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


# ── Time helpers ────────────────────────────────────────────────────

def local_instant(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """A wall-clock time in the operational timezone, as UTC."""
    return datetime(year, month, day, hour, minute, tzinfo=LOCAL_TZ).astimezone(timezone.utc)


# ── Model factories ─────────────────────────────────────────────────

def _make_manager(*, name: str = "Site Manager", email: str | None = None) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        email=email or f"{uuid.uuid4().hex[:8]}@laborhub.test",
        mobile="9800000000",
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )


def _make_worker(
    *,
    manager_id: uuid.UUID,
    name: str = "Ramesh",
    shift: ShiftLabel = ShiftLabel.morning,
    is_working: bool = False,
    is_active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        mobile="9811111111",
        manager_id=manager_id,
        shift=shift,
        is_working=is_working,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _create_worker(db, manager_id, **kwargs) -> dict:
    """Insert a worker and commit. Return its data dict."""
    from laborhub.workers.models import Worker

    data = _make_worker(manager_id=manager_id, **kwargs)
    db.add(Worker(**data))
    await db.commit()
    return data


@pytest.fixture
async def test_manager(db) -> dict:
    """Insert a manager and return its data dict."""
    from laborhub.workers.models import Manager

    data = _make_manager()
    db.add(Manager(**data))
    await db.commit()
    return data


@pytest.fixture
async def test_worker(db, test_manager) -> dict:
    """A morning-shift worker owned by test_manager, not working."""
    return await _create_worker(db, test_manager["id"])


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    actor_id: uuid.UUID,
    role: ActorRole = ActorRole.manager,
    expired: bool = False,
) -> str:
    """Generate a JWT access token as the identity service would."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(actor_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _make_auth_headers(actor_id: uuid.UUID, role: ActorRole = ActorRole.manager) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor_id, role=role)}"}


@pytest.fixture
def manager_headers(test_manager) -> dict[str, str]:
    return _make_auth_headers(test_manager["id"], ActorRole.manager)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _make_auth_headers(uuid.uuid4(), ActorRole.admin)
