"""Database connection management for the will registry.

Provides synchronous database access using SQLAlchemy over a local SQLite
file. The engine is created lazily so the CLI can point it at the database
named in its configuration before the first session is opened.

Usage:
    from willregistry.db.connection import get_db_context, init_db

    init_db()  # Create tables
    with get_db_context() as db:
        ...
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from willregistry.db.models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_database_url(configured_url: str | None = None) -> str:
    """Get database URL from environment, configuration, or default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. WILLREG_DB_PATH (file path, converted to sqlite URL)
    3. configured_url (from willregistry.yaml)
    4. sqlite:///<user data dir>/willregistry.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("WILLREG_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    if configured_url:
        return configured_url

    from willregistry.utils.paths import get_default_db_path

    return f"sqlite:///{get_default_db_path()}"


def create_db_engine(url: str) -> Engine:
    """Create an engine with SQLite pragmas applied on connect."""
    is_sqlite = url.startswith("sqlite")
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            """Enable foreign keys, which SQLite leaves off by default."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def configure(url: str | None = None) -> Engine:
    """Bind the module-level engine and session factory.

    Args:
        url: Configured database URL. Environment variables still take
            precedence, see get_database_url().

    Returns:
        The bound engine.
    """
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    resolved = get_database_url(url)
    logger.debug("Binding database engine to %s", resolved)
    _engine = create_db_engine(resolved)
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_engine() -> Engine:
    """Return the bound engine, configuring the default one on first use."""
    if _engine is None:
        return configure()
    return _engine


def SessionLocal() -> Session:
    """Open a new session on the bound engine."""
    if _session_factory is None:
        configure()
    assert _session_factory is not None
    return _session_factory()


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            job = db.query(UploadJob).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all database tables.

    Safe to call multiple times - will not recreate existing tables.
    """
    Base.metadata.create_all(bind=get_engine())


def close_db() -> None:
    """Dispose of the engine connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
