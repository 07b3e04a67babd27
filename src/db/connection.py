"""Database connection management for OrderDesk.

Provides synchronous database access using SQLAlchemy. Supports SQLite for
development with a PostgreSQL migration path for production.

Usage:
    from src.db.connection import get_db_context, init_db

    init_db()  # Create tables
    with get_db_context() as db:
        ...
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

DEFAULT_DB_FILENAME = "orderdesk.db"


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. ORDERDESK_DB_PATH (file path or sqlite URL)
    3. sqlite:///./orderdesk.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("ORDERDESK_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    return f"sqlite:///./{DEFAULT_DB_FILENAME}"


def create_db_engine(database_url: str) -> Engine:
    """Create an engine with SQLite pragmas attached when applicable.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Configured Engine.
    """
    is_sqlite = database_url.startswith("sqlite")
    new_engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if is_sqlite:
        event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers plus a single writer, so API
      workers and the CLI can share one database file.
    - busy_timeout: Writers wait for the lock instead of failing at once.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


# Engine creation
DATABASE_URL = get_database_url()
engine = create_db_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Context managers for manual session management


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            order = db.query(Order).first()
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


# Initialization functions


def init_db(bind: Engine | None = None) -> None:
    """Create all database tables.

    Safe to call multiple times - will not recreate existing tables.

    Args:
        bind: Engine to initialize. Defaults to the module engine.
    """
    Base.metadata.create_all(bind=bind or engine)


def close_db() -> None:
    """Close the engine and dispose of connection pool."""
    engine.dispose()
