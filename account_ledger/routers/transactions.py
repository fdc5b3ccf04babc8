"""
Transactions router - create, read, list, export and amend transactions.

Endpoints:
  POST  /transactions                 - Deposit, withdraw or transfer
  GET   /transactions                 - List with filters (cursor-paginated)
  GET   /transactions/export.csv      - Same filters, CSV body
  GET   /transactions/{id}            - One transaction
  GET   /transactions/{id}/audit      - Audit trail, oldest first
  PATCH /transactions/{id}            - complete / void (admin) or note

Each request is one unit of work (see database.get_db). Routes that send a
receipt commit the session themselves before scheduling it, so a receipt is
only ever sent for a state that is durably stored; the commit get_db issues
on exit is then a no-op.
"""

import csv
import io
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.database import get_db
from account_ledger.dependencies import get_current_actor, get_receipt_dispatcher
from account_ledger.models.transaction import Transaction, TransactionStatus
from account_ledger.schemas.transaction import (
    AuditEntryResponse,
    TransactionAmendRequest,
    TransactionCreateRequest,
    TransactionListResponse,
    TransactionResponse,
)
from account_ledger.security import Actor
from account_ledger.services import amendment_service, audit_service, ledger_service
from account_ledger.services.ledger_service import TransactionFilters
from account_ledger.services.notification_service import (
    Receipt,
    ReceiptDispatcher,
    dispatch_receipt,
)

router = APIRouter()


def _as_utc(value: datetime | None) -> datetime | None:
    # Stored timestamps are UTC without an offset; naive input is taken as UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


async def _commit_then_send_receipt(
    db: AsyncSession,
    background_tasks: BackgroundTasks,
    dispatcher: ReceiptDispatcher,
    txn: Transaction,
) -> None:
    """
    Commit the unit of work, then schedule the receipt.

    get_db's own commit runs only after the response and its background
    tasks, too late to guard a receipt.
    """
    await db.commit()
    background_tasks.add_task(dispatch_receipt, dispatcher, Receipt.from_transaction(txn))


def get_filters(
    account: str | None = Query(None, description="Source or target account"),
    type: str | None = Query(None, description="deposit, withdraw or transfer"),
    status: str | None = Query(None, description="Pending, Completed or Voided"),
    direction: str | None = Query(None, description="in or out, relative to account"),
    month: str | None = Query(None, description="YYYY-MM (UTC)"),
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
    min_amount_cents: int | None = Query(None, ge=0),
    max_amount_cents: int | None = Query(None, ge=0),
    q: str | None = Query(None, description="Search id, amount, accounts, creator, note"),
) -> TransactionFilters:
    return TransactionFilters(
        account=account,
        type=type,
        status=status,
        direction=direction,
        month=month,
        date_from=_as_utc(date_from),
        date_to=_as_utc(date_to),
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
        q=q,
    )


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transaction",
)
async def create_transaction(
    request: TransactionCreateRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    dispatcher: ReceiptDispatcher = Depends(get_receipt_dispatcher),
):
    """
    Create a deposit, withdrawal or transfer.

    - **withdraw** / **transfer** need the source account's **pin**
      (administrators excepted)
    - **deferred**: store as Pending; an administrator completes it later

    All amounts are in **integer cents** (e.g., 10.50 = 1050). A rejected
    request stores nothing. A receipt is sent when the transaction is
    created Completed.
    """
    txn = await ledger_service.create_transaction(
        db=db,
        actor=actor,
        txn_type=request.type,
        source=request.source_account,
        amount=request.amount_cents,
        target=request.target_account,
        pin=request.pin,
        note=request.note,
        deferred=request.deferred,
    )
    if txn.status == TransactionStatus.COMPLETED:
        await _commit_then_send_receipt(db, background_tasks, dispatcher, txn)
    return txn


@router.get(
    "",
    response_model=TransactionListResponse,
    summary="List transactions",
)
async def list_transactions(
    filters: TransactionFilters = Depends(get_filters),
    cursor: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    List transactions newest first. Members see only transactions touching
    their own account; administrators see everything.

    Pass ``next_cursor`` back as ``cursor`` to get the next page.
    """
    page = await ledger_service.list_transactions(
        db, actor, filters, cursor=cursor, limit=limit
    )
    return TransactionListResponse(transactions=page.transactions, next_cursor=page.next_cursor)


@router.get(
    "/export.csv",
    summary="Export transactions as CSV",
    response_class=Response,
)
async def export_transactions(
    filters: TransactionFilters = Depends(get_filters),
    cursor: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    rows = await ledger_service.export_transactions(
        db, actor, filters, cursor=cursor, limit=limit
    )
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(["" if value is None else value for value in row] for row in rows)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await ledger_service.get_transaction(db, actor, transaction_id)


@router.get(
    "/{transaction_id}/audit",
    response_model=list[AuditEntryResponse],
    summary="Audit trail of a transaction",
)
async def get_audit_trail(
    transaction_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await ledger_service.get_transaction(db, actor, transaction_id)
    return await audit_service.list_for_transaction(db, transaction_id)


@router.patch(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Amend a transaction",
)
async def amend_transaction(
    transaction_id: int,
    request: TransactionAmendRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    dispatcher: ReceiptDispatcher = Depends(get_receipt_dispatcher),
):
    """
    - **complete** (admin): apply a Pending transaction's balance effect
    - **void** (admin): cancel a Pending transaction, or reverse a
      Completed one; **reason** is stored
    - **note**: change the note of a Pending transaction (owner or admin)

    A receipt is sent after a successful complete or void.
    """
    result = await amendment_service.amend_transaction(
        db,
        transaction_id,
        request.action,
        actor,
        reason=request.reason,
        note=request.note,
    )
    if result.receipt_due:
        await _commit_then_send_receipt(db, background_tasks, dispatcher, result.transaction)
    return result.transaction
