"""
Amendment service - state transitions on existing transactions.

State machine:

    Pending ──complete──> Completed ──void──> Voided
       └─────────────void─────────────────────^

    action     from        effect on balances   audit entries
    ---------  ---------   ------------------   -----------------
    complete   Pending     apply                complete
    void       Pending     none                 void
    void       Completed   reverse              void, rollback
    note       Pending     none                 update

Everything else is rejected with InvalidStateTransitionError; the row is
left exactly as it was.

Who may do what:
  - complete / void: administrators only (ForbiddenError otherwise)
  - note: the source account's owner or an administrator

Locking:
  The transaction row is loaded FOR UPDATE first, so two amendments of the
  same transaction serialize and the second one sees the first one's
  result. The accounts are then locked through AccountLocker in the same
  sorted order used by creation.

Receipts are NOT sent from here. amend_transaction() reports whether the
transaction reached a receipt-worthy state; the router schedules delivery
after the unit of work has committed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.exceptions import (
    BusyAccountError,
    ForbiddenError,
    InvalidActionError,
    InvalidStateTransitionError,
    TransactionNotFoundError,
    is_lock_contention,
)
from account_ledger.models.transaction import Transaction, TransactionStatus
from account_ledger.models.transaction_audit import AuditAction
from account_ledger.security import Actor
from account_ledger.services import audit_service
from account_ledger.services.balance_mutator import apply_effect, reverse_effect
from account_ledger.services.locking import AccountLocker, LockSet, unit_of_work_deadline

logger = logging.getLogger(__name__)

ACTION_COMPLETE = "complete"
ACTION_VOID = "void"
ACTION_NOTE = "note"
AMEND_ACTIONS = (ACTION_COMPLETE, ACTION_VOID, ACTION_NOTE)


@dataclass
class AmendmentResult:
    transaction: Transaction
    # True when the transaction just became Completed or Voided
    receipt_due: bool


async def lock_transaction_row(db: AsyncSession, transaction_id: int) -> Transaction:
    """
    Load a transaction under an exclusive row lock.

    Raises:
        TransactionNotFoundError: No such transaction.
        BusyAccountError: Another amendment holds the row.
    """
    try:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        )
    except DBAPIError as exc:
        if is_lock_contention(exc):
            raise BusyAccountError() from exc
        raise
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return txn


def _reject(txn: Transaction, action: str) -> InvalidStateTransitionError:
    return InvalidStateTransitionError(txn.id, txn.status.value, action)


async def _complete(db: AsyncSession, txn: Transaction, locks: LockSet, actor: Actor) -> None:
    if txn.status != TransactionStatus.PENDING:
        raise _reject(txn, ACTION_COMPLETE)

    snapshot = apply_effect(
        locks,
        txn.type,
        txn.account_number,
        txn.amount_cents,
        target=txn.target_account,
    )
    snapshot.apply_to(txn)
    txn.status = TransactionStatus.COMPLETED
    txn.completed_at = datetime.now(timezone.utc)

    await audit_service.record(db, txn.id, AuditAction.COMPLETE, actor)


async def _void(
    db: AsyncSession, txn: Transaction, locks: LockSet, actor: Actor, reason: str | None
) -> None:
    if txn.status == TransactionStatus.VOIDED:
        raise _reject(txn, ACTION_VOID)

    # Snapshots from completion are kept; the reversal is documented by the
    # rollback audit entry.
    reversal = None
    if txn.status == TransactionStatus.COMPLETED:
        reversal = reverse_effect(locks, txn)

    txn.status = TransactionStatus.VOIDED
    txn.voided_at = datetime.now(timezone.utc)
    txn.void_reason = reason

    await audit_service.record(db, txn.id, AuditAction.VOID, actor, reason=reason)
    if reversal is not None:
        await audit_service.record(
            db,
            txn.id,
            AuditAction.ROLLBACK,
            actor,
            reason=reason,
            details={
                "source_balance_before_cents": reversal.source_before,
                "source_balance_after_cents": reversal.source_after,
                "target_balance_before_cents": reversal.target_before,
                "target_balance_after_cents": reversal.target_after,
            },
        )


async def _update_note(db: AsyncSession, txn: Transaction, actor: Actor, note: str | None) -> None:
    if txn.status != TransactionStatus.PENDING:
        raise _reject(txn, ACTION_NOTE)
    txn.note = note
    await audit_service.record(db, txn.id, AuditAction.UPDATE, actor, details={"note": note})


async def amend_transaction(
    db: AsyncSession,
    transaction_id: int,
    action: str,
    actor: Actor,
    reason: str | None = None,
    note: str | None = None,
    locker_class: type[AccountLocker] = AccountLocker,
) -> AmendmentResult:
    """
    Apply one state transition to an existing transaction.

    Args:
        db: The unit-of-work session. The caller commits.
        transaction_id: The transaction to amend.
        action: "complete", "void" or "note".
        actor: Who is acting.
        reason: Free-text reason, stored on void.
        note: The new note (action "note").
        locker_class: AccountLocker implementation (overridable in tests).

    Raises:
        TransactionNotFoundError: No such transaction.
        ForbiddenError: Non-admin complete/void, or a note edit by someone
                        other than the source owner.
        InvalidStateTransitionError: The transition is not allowed from the
                                     current status.
        AccountUnavailableError: Completing while an account is not Active.
        InsufficientFundsError: Completing without a covering balance, or a
                                reversal that would go negative.
        BusyAccountError: A lock was unavailable or the deadline passed.
    """
    action = (action or "").strip().lower()
    if action not in AMEND_ACTIONS:
        raise InvalidActionError(action)

    async with unit_of_work_deadline():
        txn = await lock_transaction_row(db, transaction_id)
        previous_status = txn.status

        if action == ACTION_NOTE:
            if not actor.can_act_on(txn.account_number):
                raise ForbiddenError("Only the account owner or an administrator can edit notes")
            await _update_note(db, txn, actor, note)
        else:
            if not actor.is_admin:
                raise ForbiddenError(f"Only administrators can {action} transactions")
            locks = await locker_class(db).acquire_all(txn.account_numbers)
            if action == ACTION_COMPLETE:
                await _complete(db, txn, locks, actor)
            else:
                await _void(db, txn, locks, actor, reason)

        await db.flush()

    logger.info(
        "Transaction amended",
        extra={
            "transaction_id": txn.id,
            "action": action,
            "from_status": previous_status.value,
            "to_status": txn.status.value,
            "actor": actor.account_number,
        },
    )
    return AmendmentResult(
        transaction=txn,
        receipt_due=action in (ACTION_COMPLETE, ACTION_VOID),
    )
