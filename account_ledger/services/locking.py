"""
Account lock ordering - the only place account rows are locked.

Every unit of work that changes balances calls AccountLocker.acquire_all()
with the accounts it touches (one for deposit/withdraw, two for transfer)
BEFORE reading any balance.

Deadlock prevention:
  The account numbers are deduplicated and sorted lexicographically, and
  the rows are locked in that order. Two transfers A->B and B->A therefore
  both try to lock A first; the loser never holds B while waiting on A, so
  the classic lock cycle cannot form.

Fail fast:
  Rows are locked with SELECT ... FOR UPDATE NOWAIT. If another unit of
  work holds the row, the database raises immediately and we surface a
  BusyAccountError; the whole unit of work rolls back and the caller may
  retry. On PostgreSQL a LOCAL lock_timeout and statement_timeout bound
  everything else the unit of work waits on.

SQLite note:
  SQLite ignores FOR UPDATE. There the database write lock taken by
  BEGIN IMMEDIATE (see database.py) serializes the whole unit of work, and
  a waiter that runs out of busy timeout is reported the same way.

Deadline:
  unit_of_work_deadline() puts an absolute asyncio timeout around an engine
  operation; when it fires the operation is cancelled, the session rolls
  back, and the caller gets a BusyAccountError.
"""

import asyncio
import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.config import settings
from account_ledger.exceptions import (
    AccountNotFoundError,
    BusyAccountError,
    is_lock_contention,
)
from account_ledger.models.account import Account

logger = logging.getLogger(__name__)


def lock_order(account_numbers: Iterable[str]) -> tuple[str, ...]:
    """Canonical acquisition order: distinct account numbers, sorted."""
    return tuple(sorted(set(account_numbers)))


@dataclass
class LockSet:
    """Account rows held under an exclusive lock for the current unit of work."""

    order: tuple[str, ...]
    accounts: dict[str, Account]

    def __getitem__(self, account_number: str) -> Account:
        return self.accounts[account_number]

    def __contains__(self, account_number: str) -> bool:
        return account_number in self.accounts

    def get(self, account_number: str | None) -> Account | None:
        if account_number is None:
            return None
        return self.accounts.get(account_number)


class AccountLocker:
    """
    Acquires exclusive, non-blocking row locks on accounts in sorted order.

    Subclasses may override ``_lock_row`` to lock against something other
    than the database (the test suite uses an in-memory lock table).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def acquire_all(self, account_numbers: Iterable[str]) -> LockSet:
        """
        Lock every account in ``account_numbers``.

        Raises:
            BusyAccountError: If any row is already locked elsewhere.
            AccountNotFoundError: If any account does not exist.
        """
        order = lock_order(account_numbers)
        await self._apply_timeouts()

        accounts: dict[str, Account] = {}
        for account_number in order:
            accounts[account_number] = await self._lock_row(account_number)

        logger.debug("Locked accounts", extra={"accounts": list(order)})
        return LockSet(order=order, accounts=accounts)

    async def _apply_timeouts(self) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            return
        lock_ms = int(settings.LOCK_TIMEOUT_MS)
        statement_ms = int(settings.UNIT_OF_WORK_TIMEOUT_SECONDS * 1000)
        # SET LOCAL cannot take bind parameters; both values are integers
        await self.db.execute(text(f"SET LOCAL lock_timeout = {lock_ms}"))
        await self.db.execute(text(f"SET LOCAL statement_timeout = {statement_ms}"))

    async def _lock_row(self, account_number: str) -> Account:
        try:
            result = await self.db.execute(
                select(Account)
                .where(Account.account_number == account_number)
                .with_for_update(nowait=True)
                # The row may already be in the identity map from an earlier,
                # unlocked read in this session; reload it under the lock.
                .execution_options(populate_existing=True)
            )
        except DBAPIError as exc:
            if is_lock_contention(exc):
                logger.warning(
                    "Account row lock not available",
                    extra={"account_number": account_number},
                )
                raise BusyAccountError(account_number) from exc
            raise

        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_number)
        return account


@asynccontextmanager
async def unit_of_work_deadline(seconds: float | None = None):
    """
    Bound an engine operation by an absolute timeout.

    Usage:
        async with unit_of_work_deadline():
            locks = await AccountLocker(db).acquire_all([...])
            ...
    """
    limit = settings.UNIT_OF_WORK_TIMEOUT_SECONDS if seconds is None else seconds
    try:
        async with asyncio.timeout(limit):
            yield
    except TimeoutError as exc:
        logger.warning("Unit of work exceeded its deadline", extra={"timeout_seconds": limit})
        raise BusyAccountError() from exc
