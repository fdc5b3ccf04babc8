"""
TransactionAudit model - append-only history of actions on a transaction.

One row is written for every state-affecting operation, in the same unit
of work as the change it documents:

  - create:   the transaction was recorded (details: {"deferred": bool})
  - update:   the note of a Pending transaction changed (details: {"note": ...})
  - complete: a Pending transaction was completed by an administrator
  - void:     the transaction was voided (reason: free text)
  - rollback: a Completed transaction's balance effect was reversed

Rows are never updated or deleted.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, String, Integer, DateTime, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column

from account_ledger.database import Base


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    COMPLETE = "complete"
    VOID = "void"
    ROLLBACK = "rollback"


class TransactionAudit(Base):
    __tablename__ = "transaction_audit"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=False,
        index=True,
    )

    action: Mapped[AuditAction] = mapped_column(
        Enum(
            AuditAction,
            name="audit_action",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    # Account number of the actor
    performed_by: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
