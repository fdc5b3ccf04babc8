"""
FastAPI dependencies for authentication, authorization and receipts.

Dependency chain:

  get_current_account (JWT -> Account)
      └── get_current_actor (Account -> Actor)
              └── require_admin (Actor -> Actor)        [admin only]

  get_receipt_dispatcher () -> ReceiptDispatcher          [overridable in tests]

An account is an administrator if its role is "admin" or it is the
configured ADMIN_ACCOUNT_NUMBER. Services receive the Actor, never the raw
token, and make every ownership decision themselves.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.database import get_db
from account_ledger.exceptions import AccountLockedError, ForbiddenError
from account_ledger.models.account import Account, AccountStatus
from account_ledger.security import Actor, decode_access_token, is_admin_account
from account_ledger.services.notification_service import ReceiptDispatcher, build_dispatcher


# Bearer token from the Authorization header; tokenUrl feeds Swagger's
# "Authorize" button.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_account(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """
    Validate the JWT and return the Account it names.

    Raises:
        HTTPException 401: Invalid/expired token, or the account is gone or
                           archived.
        AccountLockedError: The account was locked after the token was issued.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception
    account_number: str | None = payload.get("sub")
    if not account_number:
        raise credentials_exception

    account = await db.get(Account, account_number)
    if account is None or account.status == AccountStatus.ARCHIVED:
        raise credentials_exception
    if account.status == AccountStatus.LOCKED:
        raise AccountLockedError(account_number)
    return account


async def get_current_actor(
    account: Account = Depends(get_current_account),
) -> Actor:
    return Actor(
        account_number=account.account_number,
        is_admin=is_admin_account(account.account_number, account.role.value),
    )


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Require an administrator.

    Raises:
        ForbiddenError: The caller is not an administrator.
    """
    if not actor.is_admin:
        raise ForbiddenError("Admin privileges required")
    return actor


@lru_cache
def get_receipt_dispatcher() -> ReceiptDispatcher:
    return build_dispatcher()
