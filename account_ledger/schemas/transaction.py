"""
Pydantic schemas for transaction endpoints.

All monetary amounts are in integer cents (e.g., 10.50 = 1050).

The create request deliberately accepts ``type`` and ``amount_cents`` loosely
typed: the ledger's own validator decides what is acceptable, so a bad type
or amount comes back as invalid_type / invalid_amount rather than a generic
422.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from account_ledger.models.transaction import TransactionStatus, TransactionType
from account_ledger.models.transaction_audit import AuditAction


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    type: str | None = None
    source_account: str | None = None
    target_account: str | None = None
    amount_cents: Any = None
    note: str | None = Field(default=None, max_length=255)
    pin: str | None = None
    deferred: bool = Field(default=False, description="Store as Pending without moving money")


class TransactionAmendRequest(BaseModel):
    """Request body for PATCH /transactions/{id}."""
    action: Literal["complete", "void", "note"]
    reason: str | None = Field(default=None, max_length=255)
    note: str | None = Field(default=None, max_length=255)


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: int
    type: TransactionType
    status: TransactionStatus
    account_number: str
    target_account: str | None
    amount_cents: int
    fee_cents: int
    note: str | None
    created_by: str
    created_at: datetime
    completed_at: datetime | None
    voided_at: datetime | None
    void_reason: str | None
    source_balance_before_cents: int | None
    source_balance_after_cents: int | None
    target_balance_before_cents: int | None
    target_balance_after_cents: int | None

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    """One page of transactions, newest first."""
    transactions: list[TransactionResponse]
    next_cursor: str | None = None


class AuditEntryResponse(BaseModel):
    id: int
    transaction_id: int
    action: AuditAction
    performed_by: str
    reason: str | None
    details: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}
