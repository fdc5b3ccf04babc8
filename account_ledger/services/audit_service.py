"""
Audit trail service.

Audit rows are added to the caller's session and commit (or roll back) with
the change they describe; there is no separate transaction for auditing.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.models.transaction_audit import AuditAction, TransactionAudit
from account_ledger.security import Actor


async def record(
    db: AsyncSession,
    transaction_id: int,
    action: AuditAction,
    actor: Actor,
    reason: str | None = None,
    details: dict | None = None,
) -> TransactionAudit:
    entry = TransactionAudit(
        transaction_id=transaction_id,
        action=action,
        performed_by=actor.account_number,
        reason=reason,
        details=details,
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_for_transaction(db: AsyncSession, transaction_id: int) -> list[TransactionAudit]:
    """All audit entries for a transaction, oldest first."""
    result = await db.execute(
        select(TransactionAudit)
        .where(TransactionAudit.transaction_id == transaction_id)
        .order_by(TransactionAudit.id)
    )
    return list(result.scalars().all())
