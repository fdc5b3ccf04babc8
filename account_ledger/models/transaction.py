"""
Transaction model - one row per deposit, withdrawal or transfer.

Unlike a double-entry journal, a transfer is ONE row: ``account_number`` is
the source and ``target_account`` the destination. Amounts are always
positive integer cents; direction is implied by the type.

Key fields:
  - type: "deposit", "withdraw" or "transfer"
  - status: "Pending", "Completed" or "Voided" (see state machine below)
  - account_number: The source account (the only account for deposit/withdraw)
  - target_account: The destination account (transfer only, never the source)
  - fee_cents: Stored for reporting; the engine always books 0
  - created_by: Account number of the actor who created the transaction

State machine:
    Pending ──complete──> Completed ──void──> Voided
       └────────────void──────────────────────^

  Only administrators complete or void. Voiding a Completed transaction
  reverses its balance effect in the same unit of work.

Balance snapshots:
  The four ``*_balance_*_cents`` columns are written when the transaction
  reaches Completed (at creation for immediate transactions, at amendment
  for deferred ones) and are kept when it is later voided. Pending rows
  never carry snapshots. The target pair stays NULL for non-transfers.

Rows are never deleted.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from account_ledger.database import Base


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


class TransactionStatus(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    VOIDED = "Voided"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_positive_amount"),
        CheckConstraint("fee_cents >= 0", name="ck_transactions_non_negative_fee"),
        CheckConstraint(
            "target_account IS NULL OR target_account <> account_number",
            name="ck_transactions_distinct_accounts",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(
            TransactionType,
            name="transaction_type",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(
            TransactionStatus,
            name="transaction_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    account_number: Mapped[str] = mapped_column(
        ForeignKey("accounts.account_number"),
        nullable=False,
        index=True,
    )

    target_account: Mapped[str | None] = mapped_column(
        ForeignKey("accounts.account_number"),
        nullable=True,
        index=True,
    )

    # Immutable after creation
    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    fee_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    note: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    created_by: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    void_reason: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    source_balance_before_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_balance_after_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_balance_before_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_balance_after_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def account_numbers(self) -> list[str]:
        """Every account this transaction touches (source first)."""
        if self.target_account:
            return [self.account_number, self.target_account]
        return [self.account_number]
