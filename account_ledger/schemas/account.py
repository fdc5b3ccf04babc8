"""
Pydantic schemas for account endpoints.

All monetary amounts are expressed in integer cents.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from account_ledger.models.account import AccountRole, AccountStatus


class AccountResponse(BaseModel):
    """Public representation of an account (never includes the PIN hash)."""
    account_number: str
    name: str
    balance_cents: int
    status: AccountStatus
    role: AccountRole
    failed_attempts: int
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response: the stored balance and the balance replayed
    from Completed transactions. ``match`` is False only if they drifted.
    """
    account_number: str
    balance_cents: int
    status: AccountStatus
    computed_balance_cents: int
    match: bool

    model_config = {"from_attributes": True}


class AccountUpdateRequest(BaseModel):
    """Request body for PATCH /admin/accounts/{account_number}."""
    status: AccountStatus | None = None
    name: str | None = Field(default=None, min_length=1, max_length=100)
    role: AccountRole | None = None

    @model_validator(mode="after")
    def at_least_one_change(self):
        if self.status is None and self.name is None and self.role is None:
            raise ValueError("No updates provided")
        return self
