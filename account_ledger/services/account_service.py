"""
Account service - signup, login, and administrator account management.

Signup flow:
  1. Refuse the reserved administrator number and numbers already taken
  2. Hash the PIN with Argon2id
  3. Insert the Account with a zero balance
  4. Book any opening balance as an immediate deposit through the ledger,
     so the stored balance always equals the balance replayed from
     Completed transactions
  5. Return a JWT so the caller is immediately logged in

Login flow:
  1. Lock the account row (the failed-attempt counter is read-modify-write)
  2. Locked accounts are refused outright
  3. A wrong PIN increments failed_attempts; reaching LOGIN_LOCK_THRESHOLD
     locks the account. Both errors are raised with persist=True so the
     counter survives the rollback that every other error triggers
  4. A correct PIN resets the counter and returns a JWT

Security notes:
  - An unknown account number and a wrong PIN produce the same
    InvalidCredentialsError to limit enumeration
  - PINs are never logged
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.config import settings
from account_ledger.exceptions import (
    AccountLockedError,
    AccountNotFoundError,
    AccountUnavailableError,
    DuplicateAccountError,
    ForbiddenError,
    InvalidCredentialsError,
)
from account_ledger.models.account import Account, AccountRole, AccountStatus
from account_ledger.security import Actor, create_access_token, hash_pin, verify_pin
from account_ledger.services import ledger_service
from account_ledger.services.locking import AccountLocker

logger = logging.getLogger(__name__)


async def get_account(db: AsyncSession, account_number: str) -> Account:
    account = await db.get(Account, account_number)
    if account is None:
        raise AccountNotFoundError(account_number)
    return account


async def signup(
    db: AsyncSession,
    account_number: str,
    name: str,
    pin: str,
    opening_balance_cents: int = 0,
) -> tuple[Account, str]:
    """
    Open a new account.

    Args:
        db: Database session.
        account_number: 4-10 digits, unique.
        name: Display name.
        pin: 4-digit PIN (hashed before storage).
        opening_balance_cents: Optional initial deposit.

    Returns:
        Tuple of (Account instance, JWT token string).

    Raises:
        ForbiddenError: The number is reserved for the administrator.
        DuplicateAccountError: The number is already taken.
    """
    if account_number == settings.ADMIN_ACCOUNT_NUMBER:
        raise ForbiddenError("This account number is reserved")

    existing = await db.get(Account, account_number)
    if existing is not None:
        raise DuplicateAccountError(account_number)

    account = Account(
        account_number=account_number,
        name=name,
        balance_cents=0,
        status=AccountStatus.ACTIVE,
        role=AccountRole.USER,
        pin_hash=hash_pin(pin),
        failed_attempts=0,
    )
    db.add(account)
    await db.flush()

    if opening_balance_cents:
        await ledger_service.create_transaction(
            db,
            Actor(account_number=account_number),
            "deposit",
            account_number,
            opening_balance_cents,
            note="Opening balance",
        )

    logger.info("Account opened", extra={"account_number": account_number})

    token = create_access_token(data={"sub": account.account_number})
    return account, token


async def login(db: AsyncSession, account_number: str, pin: str) -> tuple[Account, str]:
    """
    Authenticate with account number and PIN.

    Raises:
        InvalidCredentialsError: Unknown account or wrong PIN.
        AccountLockedError: The account is Locked, or this failure locked it.
        AccountUnavailableError: The account is Archived.
        BusyAccountError: The account row is locked by another request.
    """
    try:
        locks = await AccountLocker(db).acquire_all([account_number])
    except AccountNotFoundError:
        raise InvalidCredentialsError()
    account = locks[account_number]

    if account.status == AccountStatus.LOCKED:
        raise AccountLockedError(account_number)
    if account.status == AccountStatus.ARCHIVED:
        raise AccountUnavailableError(account_number, account.status.value)

    if not verify_pin(pin, account.pin_hash):
        account.failed_attempts += 1
        if account.failed_attempts >= settings.LOGIN_LOCK_THRESHOLD:
            account.status = AccountStatus.LOCKED
            logger.warning(
                "Account locked after failed logins",
                extra={"account_number": account_number, "failed_attempts": account.failed_attempts},
            )
            raise AccountLockedError(account_number, persist=True)
        raise InvalidCredentialsError("Invalid PIN", persist=True)

    account.failed_attempts = 0
    token = create_access_token(data={"sub": account.account_number})
    return account, token


async def bootstrap_admin(
    db: AsyncSession,
    pin: str,
    name: str = "Administrator",
    account_number: str | None = None,
) -> Account:
    """
    Create the administrator account, or promote and re-PIN an existing one.

    Used by deployment scripts; there is no HTTP route for this.
    """
    account_number = account_number or settings.ADMIN_ACCOUNT_NUMBER
    account = await db.get(Account, account_number)
    if account is None:
        account = Account(
            account_number=account_number,
            name=name,
            balance_cents=0,
            status=AccountStatus.ACTIVE,
            pin_hash=hash_pin(pin),
            failed_attempts=0,
        )
        db.add(account)
    else:
        account.pin_hash = hash_pin(pin)
        account.status = AccountStatus.ACTIVE
        account.failed_attempts = 0
    account.role = AccountRole.ADMIN
    await db.flush()
    return account


# ---------------------------------------------------------------------------
# Admin account management
# ---------------------------------------------------------------------------


async def admin_list_accounts(
    db: AsyncSession,
    include_archived: bool = False,
    q: str | None = None,
    status: AccountStatus | None = None,
) -> list[Account]:
    """
    Accounts ordered by number.

    q matches part of the account number, or part of the name ignoring
    case. An explicit status returns exactly that status, Archived included;
    otherwise Archived accounts are left out unless include_archived is set.
    """
    query = select(Account).order_by(Account.account_number)
    if status is not None:
        query = query.where(Account.status == status)
    elif not include_archived:
        query = query.where(Account.status != AccountStatus.ARCHIVED)
    if q:
        pattern = f"%{q}%"
        query = query.where(
            or_(Account.account_number.like(pattern), Account.name.ilike(pattern))
        )
    result = await db.execute(query)
    return list(result.scalars().all())


async def admin_update_account(
    db: AsyncSession,
    actor: Actor,
    account_number: str,
    status: AccountStatus | None = None,
    name: str | None = None,
    role: AccountRole | None = None,
) -> Account:
    """
    Change an account's status, display name or role.

    Setting the status to Active (unlock or restore) resets the failed
    login counter. The primary administrator account keeps its admin role.

    Raises:
        ForbiddenError: Actor is not an administrator, or tried to demote
                        the primary administrator.
        AccountNotFoundError: No such account.
        BusyAccountError: The account row is locked by another request.
    """
    if not actor.is_admin:
        raise ForbiddenError("Admin privileges required")
    if (
        role is not None
        and role != AccountRole.ADMIN
        and account_number == settings.ADMIN_ACCOUNT_NUMBER
    ):
        raise ForbiddenError("Cannot remove admin role from the primary administrator account")

    locks = await AccountLocker(db).acquire_all([account_number])
    account = locks[account_number]

    if name is not None:
        account.name = name
    if role is not None:
        account.role = role
    if status is not None:
        account.status = status
        if status == AccountStatus.ACTIVE:
            account.failed_attempts = 0

    await db.flush()
    logger.info(
        "Account updated by admin",
        extra={
            "account_number": account_number,
            "status": account.status.value,
            "role": account.role.value,
            "actor": actor.account_number,
        },
    )
    return account
