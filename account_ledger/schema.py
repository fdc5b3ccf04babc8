"""
Startup schema check.

The schema is versioned by Alembic (alembic/versions). At startup the
application compares the live database against the ORM metadata and
refuses to start if a table or column the engine relies on is missing,
instead of discovering it halfway through a unit of work.
"""

import logging

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from account_ledger.database import Base
import account_ledger.models  # noqa: F401  (registers every table on Base.metadata)

logger = logging.getLogger(__name__)


class SchemaMismatchError(RuntimeError):
    """The database is missing tables or columns; run the migrations."""


def missing_columns(sync_conn) -> dict[str, list[str]]:
    """Map of table name -> missing column names (all columns if the table is absent)."""
    inspector = inspect(sync_conn)
    existing_tables = set(inspector.get_table_names())
    missing: dict[str, list[str]] = {}
    for table in Base.metadata.sorted_tables:
        if table.name not in existing_tables:
            missing[table.name] = [column.name for column in table.columns]
            continue
        present = {column["name"] for column in inspector.get_columns(table.name)}
        absent = [column.name for column in table.columns if column.name not in present]
        if absent:
            missing[table.name] = absent
    return missing


async def verify_schema(engine: AsyncEngine) -> None:
    """
    Raises:
        SchemaMismatchError: Listing every missing table/column.
    """
    async with engine.connect() as conn:
        missing = await conn.run_sync(missing_columns)
    if missing:
        details = "; ".join(f"{table}: {', '.join(cols)}" for table, cols in missing.items())
        logger.error("Database schema is out of date", extra={"missing": missing})
        raise SchemaMismatchError(f"Database schema is missing columns ({details}). Run migrations.")
    logger.info("Database schema verified")
