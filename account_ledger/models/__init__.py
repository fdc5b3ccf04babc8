"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Alembic and verify_schema() see every table in Base.metadata
  2. Other modules can import from account_ledger.models directly
"""

from account_ledger.models.account import Account, AccountRole, AccountStatus  # noqa: F401
from account_ledger.models.transaction import (  # noqa: F401
    Transaction,
    TransactionStatus,
    TransactionType,
)
from account_ledger.models.transaction_audit import AuditAction, TransactionAudit  # noqa: F401
