"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite engine, session factory and session
- IngestService wired to the in-memory database
- Catalog helper
"""

import os
from collections.abc import Callable, Generator

# Keep the module-level engine in src.db.connection off the working
# directory; tests that need a database build their own below.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import EngineConfig
from src.db.models import Base, Product
from src.services.ingest_service import IngestService
from tests.helpers import TENANT


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def _no_model_credentials(monkeypatch):
    """Keep every test on the rule path unless it opts into a stub backend."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    for key in list(os.environ):
        if key.startswith("ORDERDESK_"):
            monkeypatch.delenv(key, raising=False)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite shared across sessions via StaticPool."""
    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create a session for direct store tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def make_service(session_factory: sessionmaker) -> Callable[..., IngestService]:
    """Build a rule-only IngestService with engine config overrides."""

    def _make(**overrides) -> IngestService:
        return IngestService(
            session_factory=session_factory,
            config=EngineConfig(**overrides),
        )

    return _make


@pytest.fixture
def ingest_service(make_service) -> IngestService:
    return make_service()


@pytest.fixture
def add_products(session_factory: sessionmaker) -> Callable[..., list[str]]:
    """Insert catalog rows: add_products(("Onion", None), ("Chicken Biryani", "half"))."""

    def _add(*rows: tuple[str, str | None], tenant_id: str = TENANT) -> list[str]:
        session = session_factory()
        try:
            products = [
                Product(tenant_id=tenant_id, canonical=canonical, variant=variant)
                for canonical, variant in rows
            ]
            session.add_all(products)
            session.commit()
            return [p.id for p in products]
        finally:
            session.close()

    return _add
