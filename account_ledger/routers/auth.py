"""
Authentication router - signup and login endpoints.

These are the only public (unauthenticated) endpoints in the API.
Everything else requires a valid JWT token.

Endpoints:
  POST /auth/signup  - Open an account and get a token
  POST /auth/login   - Authenticate with account number + PIN

Security notes:
  - Plaintext PINs exist only in memory during request processing; they
    are hashed before any database operation and never logged.
  - A failed login is committed (failed_attempts) even though the request
    returns an error; see AccountService.login.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.database import get_db
from account_ledger.schemas.auth import LoginRequest, SignupRequest, TokenResponse
from account_ledger.services import account_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new account",
)
async def signup(
    request: SignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Open an account and log in.

    - **account_number**: 4-10 digits, must be unused
    - **pin**: exactly 4 digits
    - **opening_balance_cents**: optional; booked as a Completed deposit
    """
    account, token = await account_service.signup(
        db=db,
        account_number=request.account_number,
        name=request.name,
        pin=request.pin,
        opening_balance_cents=request.opening_balance_cents,
    )
    return TokenResponse(account_number=account.account_number, name=account.name, token=token)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Log in with account number and PIN.

    Three consecutive wrong PINs lock the account until an administrator
    unlocks it.
    """
    account, token = await account_service.login(
        db=db,
        account_number=request.account_number,
        pin=request.pin,
    )
    return TokenResponse(account_number=account.account_number, name=account.name, token=token)
