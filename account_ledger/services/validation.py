"""
Transaction request validation.

validate_transaction_request() is a pure check: it touches no database and
takes no locks. Anything it rejects is an input or authorization error that
the caller can fix and resubmit. Checks run in a fixed order so the same bad
request always produces the same error:

  1. type        -> InvalidTypeError
  2. amount      -> InvalidAmountError
  3. accounts    -> MissingAccountError
  4. credential  -> CredentialRequiredError  (withdraw/transfer, non-admin)
  5. authority   -> ForbiddenError           (actor must own the source)

Amounts are whole cents. Integers and numeric strings such as "1500" are
accepted; fractions, booleans, NaN/Infinity and values <= 0 are not.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from account_ledger.exceptions import (
    CredentialRequiredError,
    ForbiddenError,
    InvalidAmountError,
    InvalidTypeError,
    MissingAccountError,
)
from account_ledger.models.transaction import TransactionType
from account_ledger.security import Actor

# Types that move money out of the source account and need the owner's PIN
DEBIT_TYPES = frozenset({TransactionType.WITHDRAW, TransactionType.TRANSFER})


@dataclass(frozen=True)
class ValidatedRequest:
    txn_type: TransactionType
    source: str
    target: str | None
    amount_cents: int
    note: str | None
    pin: str | None
    deferred: bool

    @property
    def account_numbers(self) -> list[str]:
        if self.target:
            return [self.source, self.target]
        return [self.source]


def parse_transaction_type(raw: object) -> TransactionType:
    try:
        return TransactionType(str(raw).strip().lower())
    except ValueError:
        raise InvalidTypeError(raw)


def parse_amount_cents(raw: object) -> int:
    """Parse a positive whole number of cents, or raise InvalidAmountError."""
    if raw is None or isinstance(raw, bool):
        raise InvalidAmountError()
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError()
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError()
    if value != value.to_integral_value():
        raise InvalidAmountError("Amount must be a whole number of cents")
    return int(value)


def _clean_account(raw: str | None) -> str | None:
    if raw is None:
        return None
    cleaned = str(raw).strip()
    return cleaned or None


def validate_transaction_request(
    actor: Actor,
    txn_type: object,
    source: str | None,
    amount: object,
    target: str | None = None,
    pin: str | None = None,
    note: str | None = None,
    deferred: bool = False,
) -> ValidatedRequest:
    """
    Validate a createTransaction request on behalf of ``actor``.

    Returns:
        A ValidatedRequest with a parsed type and integer amount.

    Raises:
        InvalidTypeError, InvalidAmountError, MissingAccountError,
        CredentialRequiredError, ForbiddenError.
    """
    parsed_type = parse_transaction_type(txn_type)
    amount_cents = parse_amount_cents(amount)

    source = _clean_account(source)
    target = _clean_account(target)
    if source is None:
        raise MissingAccountError("Source account is required")
    if parsed_type == TransactionType.TRANSFER:
        if target is None:
            raise MissingAccountError("Target account is required for a transfer")
        if target == source:
            raise MissingAccountError("Cannot transfer to the same account")
    else:
        # Only transfers have a second leg
        target = None

    if parsed_type in DEBIT_TYPES and not pin and not actor.is_admin:
        raise CredentialRequiredError()

    if not actor.can_act_on(source):
        raise ForbiddenError("You can only transact on your own account")

    return ValidatedRequest(
        txn_type=parsed_type,
        source=source,
        target=target,
        amount_cents=amount_cents,
        note=note,
        pin=pin or None,
        deferred=bool(deferred),
    )
