"""
Test fixtures for the Account Ledger test suite.

Shared fixtures:

  - db_engine / session_factory: a fresh SQLite database FILE per test
  - client: async HTTP test client wired to that database
  - receipts: recording receipt dispatcher (inspect what was "sent")
  - make_account: insert an account directly, with a chosen balance/status
  - auth_headers: Authorization header for any account number
  - admin_headers: headers for the built-in administrator (0000)
  - balance_of / fetch_transactions: read committed state with short sessions

Key design decisions:
  - A database file (not in-memory SQLite) is used so that every request
    gets its own connection, and concurrent requests really contend for the
    database write lock the way separate processes would.
  - get_db is overridden with unit_of_work(session_factory), so requests go
    through exactly the same commit/rollback path as in production.
  - Helper sessions are always closed before the next request: an open
    SQLite transaction would hold the write lock.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from account_ledger.config import settings
from account_ledger.database import Base, build_engine, get_db, unit_of_work
from account_ledger.dependencies import get_receipt_dispatcher
from account_ledger.main import app
from account_ledger.models import Account, AccountRole, AccountStatus, Transaction, TransactionAudit
from account_ledger.security import create_access_token, hash_pin
from account_ledger.services.notification_service import ReceiptDispatcher

DEFAULT_PIN = "1234"


class RecordingDispatcher(ReceiptDispatcher):
    """Keeps every receipt instead of delivering it."""

    def __init__(self):
        self.sent = []

    async def dispatch(self, receipt):
        self.sent.append(receipt)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh database file with all tables for each test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def receipts():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def client(session_factory, receipts):
    """
    Async HTTP test client with the test database injected.

    Each request runs in its own unit of work on the test database.
    """

    async def override_get_db():
        async with unit_of_work(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_receipt_dispatcher] = lambda: receipts

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_account(session_factory):
    """
    Insert an account directly (bypassing signup and the ledger).

    Usage:
        await make_account("1001", balance_cents=1000)
    """

    async def _make(
        account_number: str,
        balance_cents: int = 0,
        pin: str = DEFAULT_PIN,
        status: AccountStatus = AccountStatus.ACTIVE,
        role: AccountRole = AccountRole.USER,
        name: str | None = None,
    ) -> Account:
        async with unit_of_work(session_factory) as session:
            account = Account(
                account_number=account_number,
                name=name or f"Holder {account_number}",
                balance_cents=balance_cents,
                status=status,
                role=role,
                pin_hash=hash_pin(pin),
                failed_attempts=0,
            )
            session.add(account)
        return account

    return _make


@pytest.fixture
def auth_headers():
    def _headers(account_number: str) -> dict:
        token = create_access_token(data={"sub": account_number})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def admin_headers(make_account, auth_headers):
    """Headers for the built-in administrator account."""
    await make_account(settings.ADMIN_ACCOUNT_NUMBER, name="Administrator")
    return auth_headers(settings.ADMIN_ACCOUNT_NUMBER)


@pytest.fixture
def balance_of(session_factory):
    async def _balance(account_number: str) -> int:
        async with session_factory() as session:
            account = await session.get(Account, account_number)
            return account.balance_cents

    return _balance


@pytest.fixture
def fetch_transactions(session_factory):
    async def _fetch() -> list[Transaction]:
        async with session_factory() as session:
            result = await session.execute(select(Transaction).order_by(Transaction.id))
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def fetch_audit(session_factory):
    async def _fetch(transaction_id: int) -> list[TransactionAudit]:
        async with session_factory() as session:
            result = await session.execute(
                select(TransactionAudit)
                .where(TransactionAudit.transaction_id == transaction_id)
                .order_by(TransactionAudit.id)
            )
            return list(result.scalars().all())

    return _fetch
