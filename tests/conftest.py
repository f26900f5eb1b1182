"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of grove.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from grove.database.models import Base, UserProfile, UserRole  # noqa: E402
from grove.engine.calendar import HebrewCivilCalendar  # noqa: E402
from grove.services.retry import RetryPolicy  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

# 2024-01-05 12:00 in Jerusalem (24 Tevet 5784)
FIXED_NOW = datetime(2024, 1, 5, 10, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Grove tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with a real connection pool, for threaded tests."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'grove.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def calendar() -> HebrewCivilCalendar:
    return HebrewCivilCalendar("Asia/Jerusalem")


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with no backoff so tests don't sleep."""
    return RetryPolicy(max_attempts=3, base_backoff=0.0, max_backoff=0.0)


def add_profile(
    engine: Engine,
    uid: str,
    role: UserRole = UserRole.USER,
    *,
    email: str | None = None,
    display_name: str | None = None,
    points: int = 0,
    level: str = "seedling",
    is_blocked: bool = False,
) -> None:
    """Insert a complete profile row directly."""
    with Session(engine) as session:
        session.add(UserProfile(
            uid=uid,
            email=email if email is not None else f"{uid}@example.com",
            display_name=display_name if display_name is not None else uid.title(),
            role=role.value,
            level=level,
            level_pinned=False,
            points=points,
            flowers=0,
            correct_answers=0,
            questions_asked=0,
            helpful_answers=0,
            days_active=0,
            streak=0,
            is_blocked=is_blocked,
            created_at=FIXED_NOW,
            last_active=FIXED_NOW,
        ))
        session.commit()


@pytest.fixture
def members(db_engine: Engine) -> Engine:
    """Engine pre-populated with one member of each role.

    uids: ``alice`` (user), ``tom`` (trustee), ``ada`` (admin),
    ``sam`` (super_admin).
    """
    add_profile(db_engine, "alice", UserRole.USER)
    add_profile(db_engine, "tom", UserRole.TRUSTEE)
    add_profile(db_engine, "ada", UserRole.ADMIN)
    add_profile(db_engine, "sam", UserRole.SUPER_ADMIN)
    return db_engine


@pytest.fixture
def client():
    """Create a FastAPI TestClient with raise_server_exceptions=False."""
    from fastapi.testclient import TestClient

    from grove.api.main import app

    return TestClient(app, raise_server_exceptions=False)
