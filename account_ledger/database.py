"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - unit_of_work(): Scoped session that commits on success and rolls back
    on every other exit path
  - get_db(): FastAPI dependency that provides one unit of work per request

Unit of work:
  Every request that touches balances runs inside exactly one session
  transaction. Validation, row locks, balance updates, the ledger insert
  and the audit insert all commit together or not at all.

SQLite note:
  SQLite has no row locks and pysqlite defers BEGIN until the first write,
  which would let two requests read the same balance before either writes.
  configure_engine() turns off the driver's implicit transaction handling and
  emits BEGIN IMMEDIATE instead, so a unit of work holds the database write
  lock from its first statement. Concurrent writers are serialized by the
  file lock and give up after SQLITE_BUSY_TIMEOUT_SECONDS.
"""

from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from account_ledger.config import settings
from account_ledger.exceptions import LedgerAPIError


def configure_engine(engine: AsyncEngine) -> AsyncEngine:
    """
    Attach dialect-specific connection setup to an engine.

    For SQLite this enables foreign keys and replaces the driver's deferred
    BEGIN with BEGIN IMMEDIATE. Other dialects are returned unchanged.
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # Stop the driver from emitting its own BEGIN; we emit ours below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url`` with the ledger's connection setup."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT_SECONDS
    return configure_engine(
        create_async_engine(url, echo=echo, connect_args=connect_args)
    )


# echo=True in debug mode logs all SQL statements (PIN hashes only, never PINs)
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# expire_on_commit=False keeps attributes readable after commit, so response
# models and receipts can be built without another round trip.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Holds the metadata that create_all(), verify_schema() and the Alembic
    migrations are checked against.
    """
    pass


@asynccontextmanager
async def unit_of_work(session_factory: async_sessionmaker | None = None):
    """
    Open a session whose transaction commits only on a clean exit.

    Usage:
        async with unit_of_work() as db:
            await ledger_service.create_transaction(db, ...)

    Any exception (including cancellation) rolls back. The single carve-out
    is a LedgerAPIError raised with ``persist=True``, whose side effects
    (the failed-login counter) are committed before the error propagates.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except LedgerAPIError as exc:
            if exc.persist:
                await session.commit()
            else:
                await session.rollback()
            raise
        except BaseException:
            await session.rollback()
            raise


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed after the route returns and rolled back if the
    route raises. This exit runs after the response's background tasks, so
    a route that schedules a receipt commits the session itself first.
    """
    async with unit_of_work() as session:
        yield session
