"""
Admin router - account management for administrators.

Endpoints:
  GET   /admin/accounts                     - List accounts
  PATCH /admin/accounts/{account_number}    - Change status, name or role

Transaction amendments (complete/void) live on PATCH /transactions/{id};
the service checks the admin privilege there.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.database import get_db
from account_ledger.dependencies import require_admin
from account_ledger.models.account import AccountStatus
from account_ledger.schemas.account import AccountResponse, AccountUpdateRequest
from account_ledger.security import Actor
from account_ledger.services import account_service

router = APIRouter()


@router.get(
    "/accounts",
    response_model=list[AccountResponse],
    summary="List accounts (admin)",
)
async def list_accounts(
    include_archived: bool = Query(False, description="Include Archived accounts"),
    q: str | None = Query(None, description="Part of the account number or name"),
    status: AccountStatus | None = Query(None, description="Active, Locked or Archived"),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.admin_list_accounts(
        db, include_archived=include_archived, q=q, status=status
    )


@router.patch(
    "/accounts/{account_number}",
    response_model=AccountResponse,
    summary="Update an account (admin)",
)
async def update_account(
    account_number: str,
    request: AccountUpdateRequest,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Lock, unlock, archive or restore an account, rename it, or change its
    role. Setting status to Active also clears the failed-login counter.
    """
    return await account_service.admin_update_account(
        db,
        admin,
        account_number,
        status=request.status,
        name=request.name,
        role=request.role,
    )
