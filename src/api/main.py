"""FastAPI application for the OrderDesk API.

Provides the main application instance with the ingest router and the
health check.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.routes import ingest
from src.api.schemas import HealthResponse
from src.db.connection import get_db_context, init_db

logger = logging.getLogger(__name__)

# Module-level state for the health endpoint
_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: create tables on startup."""
    global _startup_time

    _startup_time = _time.time()
    init_db()
    logger.info("OrderDesk API started")

    yield

    logger.info("OrderDesk API stopped")


app = FastAPI(
    title="OrderDesk API",
    description="Decision engine for conversational order taking",
    version="0.1.0",
    lifespan=lifespan,
)


# Include routers
app.include_router(ingest.router, prefix="/api/v1")


@app.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint with database connectivity.

    Returns:
        HealthResponse with status, version, uptime and database state.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0

    try:
        version = _pkg_version("orderdesk")
    except PackageNotFoundError:
        version = "unknown"

    database = "ok"
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check database probe failed: %s", e)
        database = "unavailable"

    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=version,
        uptime_seconds=uptime,
        database=database,
    )
