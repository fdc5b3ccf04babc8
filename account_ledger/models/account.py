"""
Account model - a customer's balance and credentials.

Each account has:
  - A unique, immutable account number (the primary key and login identifier)
  - A display name
  - A balance in integer cents
  - A status: Active, Locked or Archived
  - A role: "user" or "admin"
  - An Argon2 hash of the 4-digit PIN and a failed-login counter

Balance management:
  ``balance_cents`` is only ever changed by the balance mutator while the
  row is locked inside a unit of work, in the same database transaction
  that writes the ledger row describing the change.

  A CHECK constraint at the database level enforces that the balance can
  never go negative. The engine checks before debiting; the constraint is
  the final safety net against bugs.

Status lifecycle:
  Active -> Locked    after LOGIN_LOCK_THRESHOLD failed logins, or by an admin
  Locked -> Active    by an admin (resets failed_attempts)
  Active -> Archived  by an admin
  Archived -> Active  by an admin restore
  Only Active accounts can take part in a balance mutation.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from account_ledger.database import Base


class AccountStatus(str, enum.Enum):
    ACTIVE = "Active"
    LOCKED = "Locked"
    ARCHIVED = "Archived"


class AccountRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_accounts_non_negative_balance"),
        CheckConstraint("failed_attempts >= 0", name="ck_accounts_failed_attempts"),
    )

    account_number: Mapped[str] = mapped_column(
        String(10),
        primary_key=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    balance_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # values_callable stores "Active" rather than the member name "ACTIVE"
    status: Mapped[AccountStatus] = mapped_column(
        Enum(
            AccountStatus,
            name="account_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )

    role: Mapped[AccountRole] = mapped_column(
        Enum(
            AccountRole,
            name="account_role",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AccountRole.USER,
    )

    # Argon2id hash of the PIN (never store the PIN itself)
    pin_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE
