"""
grove.database.engine — Database Connection, Sessions & Error Translation
==========================================================================

Engine construction, schema creation and the short per-operation
session every service uses.  Database exceptions raised inside
:func:`get_session` come out as :class:`ConflictError` (lost race),
:class:`UpstreamError` (database unavailable or slow) or
:class:`ValidationError` (value rejected by a column).

Usage::

    from grove.database.engine import create_db_engine, init_db, get_session

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine, config)              # CREATE TABLE IF NOT EXISTS + seed grants

    with get_session(engine) as session:
        profile = session.get(UserProfile, uid)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from grove.database.models import Base
from grove.errors import ConflictError, UpstreamError, ValidationError

if TYPE_CHECKING:
    from grove.config import GroveConfig

logger = logging.getLogger(__name__)

# Statement timeout applied to PostgreSQL connections (milliseconds)
DEFAULT_STATEMENT_TIMEOUT_MS = 5_000


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from ``DATABASE_URL``.

    No persistence call may block indefinitely:
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``statement_timeout`` — PostgreSQL aborts statements running longer
      than ``DB_STATEMENT_TIMEOUT_MS`` (default 5 s).

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    kwargs: dict = {
        "echo": False,
        "pool_pre_ping": True,   # Reconnect stale connections automatically
        "pool_recycle": 3600,
    }
    if url.startswith("postgresql"):
        timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", DEFAULT_STATEMENT_TIMEOUT_MS))
        kwargs.update(
            pool_size=5,
            max_overflow=10,
            pool_timeout=10,
            connect_args={"options": f"-c statement_timeout={timeout_ms}"},
        )

    engine = create_engine(url, **kwargs)
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, config: GroveConfig | None = None) -> None:
    """Create all tables and register configured seed administrators.

    Safe to call on every startup.  In production the schema is managed by
    Alembic (``alembic upgrade head``); ``create_all`` covers dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    if config is not None and config.seed_admins:
        from grove.database.seed import register_seed_admins

        register_seed_admins(engine, config.seed_admins, config.level_table)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
@contextmanager
def translate_db_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures in the Grove error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError(f"{operation}: concurrent update conflict") from exc
    except DataError as exc:
        raise ValidationError(f"{operation}: value rejected by the database") from exc
    except (OperationalError, PoolTimeoutError) as exc:
        raise UpstreamError(f"{operation}: database unavailable or timed out") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise UpstreamError(f"{operation}: database connection lost") from exc
        raise


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine, operation: str = "database operation"):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception, translating database errors on the way out.

    Objects stay loaded after commit (``expire_on_commit=False``) so they
    can be expunged and returned to callers.

    Usage::

        with get_session(engine, "ensure_profile") as session:
            session.add(UserProfile(uid="abc"))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        with translate_db_errors(operation):
            yield session
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
