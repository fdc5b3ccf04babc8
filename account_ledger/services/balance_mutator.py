"""
Balance mutator - applies and reverses the balance effect of a transaction.

Callers must already hold the row locks (see locking.py); the functions here
only read and write attributes on the locked Account objects, and the
changes are flushed with the rest of the unit of work.

Effects:
    deposit   source += amount
    withdraw  source -= amount
    transfer  source -= amount, target += amount

Forward rules (apply_effect):
  - every participating account must be Active, otherwise
    AccountUnavailableError
  - withdraw/transfer need source balance >= amount, otherwise
    InsufficientFundsError

Reversal rules (reverse_effect):
  - account status is NOT checked; a Completed transaction can be voided
    even after one of its accounts was locked or archived
  - the reversal may not drive any balance below zero (e.g. the target of
    a transfer already spent the money), otherwise InsufficientFundsError

Nothing is mutated unless every check passes.
"""

from dataclasses import dataclass

from account_ledger.exceptions import AccountUnavailableError, InsufficientFundsError
from account_ledger.models.transaction import Transaction, TransactionType
from account_ledger.services.locking import LockSet


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balances observed under lock, before and after a mutation."""

    source_before: int
    source_after: int
    target_before: int | None = None
    target_after: int | None = None

    def apply_to(self, txn: Transaction) -> None:
        txn.source_balance_before_cents = self.source_before
        txn.source_balance_after_cents = self.source_after
        txn.target_balance_before_cents = self.target_before
        txn.target_balance_after_cents = self.target_after


def signed_deltas(
    txn_type: TransactionType, source: str, target: str | None, amount_cents: int
) -> dict[str, int]:
    """Per-account balance change a Completed transaction represents."""
    if txn_type == TransactionType.DEPOSIT:
        return {source: amount_cents}
    if txn_type == TransactionType.WITHDRAW:
        return {source: -amount_cents}
    return {source: -amount_cents, target: amount_cents}


def require_active(locks: LockSet, account_numbers: list[str]) -> None:
    """Raise AccountUnavailableError unless every listed account is Active."""
    for account_number in account_numbers:
        account = locks[account_number]
        if not account.is_active:
            raise AccountUnavailableError(account_number, account.status.value)


def _apply_deltas(
    locks: LockSet, deltas: dict[str, int], source: str, target: str | None
) -> BalanceSnapshot:
    # Check every account before touching any of them
    for account_number, delta in deltas.items():
        account = locks[account_number]
        if account.balance_cents + delta < 0:
            raise InsufficientFundsError(
                account_number, -delta, account.balance_cents
            )

    before = {n: locks[n].balance_cents for n in deltas}
    for account_number, delta in deltas.items():
        locks[account_number].balance_cents += delta

    return BalanceSnapshot(
        source_before=before[source],
        source_after=locks[source].balance_cents,
        target_before=before.get(target) if target else None,
        target_after=locks[target].balance_cents if target else None,
    )


def apply_effect(
    locks: LockSet,
    txn_type: TransactionType,
    source: str,
    amount_cents: int,
    target: str | None = None,
) -> BalanceSnapshot:
    """
    Apply a transaction's effect to the locked accounts.

    Raises:
        AccountUnavailableError: A participating account is not Active.
        InsufficientFundsError: The source cannot cover the debit.
    """
    deltas = signed_deltas(txn_type, source, target, amount_cents)
    require_active(locks, list(deltas))
    return _apply_deltas(locks, deltas, source, target)


def reverse_effect(locks: LockSet, txn: Transaction) -> BalanceSnapshot:
    """
    Undo a Completed transaction's effect on the locked accounts.

    Raises:
        InsufficientFundsError: Undoing would make some balance negative.
    """
    deltas = signed_deltas(txn.type, txn.account_number, txn.target_account, txn.amount_cents)
    inverse = {n: -d for n, d in deltas.items()}
    return _apply_deltas(locks, inverse, txn.account_number, txn.target_account)
