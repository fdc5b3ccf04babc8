"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager - logging setup, schema creation/verification, cleanup
  2. CORS middleware - allows frontend origins to make cross-origin requests
  3. Exception handlers - maps domain errors to HTTP responses
  4. Router registration - mounts all API endpoint groups

Running locally:
    uvicorn account_ledger.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from account_ledger.config import settings
from account_ledger.database import Base, engine
from account_ledger.exceptions import register_exception_handlers
from account_ledger.logging_config import setup_logging
from account_ledger.routers import accounts, admin, auth, transactions
from account_ledger.schema import verify_schema

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(url: str) -> None:
    # sqlite+aiosqlite:///./data/ledger.db -> ./data
    if url.startswith("sqlite") and ":///" in url:
        path = url.split(":///", 1)[1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures logging. In DEBUG mode creates missing tables (a
      development convenience); otherwise the schema is owned by Alembic.
      Either way the live schema is verified before serving traffic.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    setup_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    _ensure_sqlite_directory(settings.DATABASE_URL)
    if settings.DEBUG:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    await verify_schema(engine)
    logger.info("Application started", extra={"version": settings.APP_VERSION})
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Account ledger with deposits, withdrawals, transfers and admin amendments",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
