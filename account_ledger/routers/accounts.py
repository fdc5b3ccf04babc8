"""
Accounts router - the caller's profile and balance checks.

Endpoints:
  GET /accounts/me                          - Current account profile
  GET /accounts/{account_number}/balance    - Stored vs. replayed balance
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.database import get_db
from account_ledger.dependencies import get_current_account, get_current_actor
from account_ledger.models.account import Account
from account_ledger.schemas.account import AccountResponse, BalanceResponse
from account_ledger.security import Actor
from account_ledger.services import ledger_service

router = APIRouter()


@router.get("/me", response_model=AccountResponse, summary="Current account")
async def get_me(account: Account = Depends(get_current_account)):
    return account


@router.get(
    "/{account_number}/balance",
    response_model=BalanceResponse,
    summary="Get account balance",
)
async def get_balance(
    account_number: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the balance of an account you own (any account, for admins).

    Returns the stored balance together with the balance computed by
    replaying Completed transactions; ``match`` flags a discrepancy.
    """
    balance = await ledger_service.get_account_balance(db, actor, account_number)
    return BalanceResponse(
        account_number=balance.account_number,
        balance_cents=balance.balance_cents,
        status=balance.status,
        computed_balance_cents=balance.computed_balance_cents,
        match=balance.match,
    )
