"""
Ledger service - creating and reading transactions.

THIS IS THE CORE OF THE ENGINE. createTransaction runs as:

    validate  ->  lock accounts (sorted)  ->  verify PIN
              ->  mutate balances (immediate only)  ->  insert ledger row
              ->  insert "create" audit entry

all inside the caller's unit of work (one AsyncSession transaction, see
database.unit_of_work) and under an absolute deadline. If any step raises,
the unit of work rolls back and nothing is persisted: a failed request
leaves no ledger row, no audit row and no balance change.

Immediate vs deferred:
  - immediate (default): balances move now; the row is stored Completed with
    its four balance snapshots and completed_at set.
  - deferred: the row is stored Pending with no snapshots and no balance
    effect. An administrator completes or voids it later
    (see amendment_service).

Both paths require every participating account to be Active when the
transaction is created.

Read side:
  list_transactions() and export_transactions() share one filter builder
  and return rows ordered by (created_at DESC, id DESC), paginated with an
  opaque cursor. get_account_balance() is a plain read, not taken under a
  row lock; a slightly stale balance is acceptable for display.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from account_ledger.config import settings
from account_ledger.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidCursorError,
    InvalidFilterError,
    TransactionNotFoundError,
)
from account_ledger.models.account import Account, AccountStatus
from account_ledger.models.transaction import Transaction, TransactionStatus, TransactionType
from account_ledger.models.transaction_audit import AuditAction
from account_ledger.security import Actor, verify_pin
from account_ledger.services import audit_service
from account_ledger.services.balance_mutator import apply_effect, require_active
from account_ledger.services.locking import AccountLocker, unit_of_work_deadline
from account_ledger.services.validation import DEBIT_TYPES, validate_transaction_request

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


# ---------------------------------------------------------------------------
# createTransaction
# ---------------------------------------------------------------------------


async def create_transaction(
    db: AsyncSession,
    actor: Actor,
    txn_type: object,
    source: str | None,
    amount: object,
    target: str | None = None,
    pin: str | None = None,
    note: str | None = None,
    deferred: bool = False,
    locker_class: type[AccountLocker] = AccountLocker,
) -> Transaction:
    """
    Validate, lock, optionally apply, and record one transaction.

    Args:
        db: The unit-of-work session. The caller commits.
        actor: Who is acting. Non-admins may only debit their own account
               and must supply that account's PIN for withdraw/transfer.
        txn_type: "deposit", "withdraw" or "transfer".
        source: Source account number (the only account for deposit/withdraw).
        amount: Positive whole number of cents.
        target: Destination account (transfer only).
        pin: The source account's PIN.
        note: Optional free-text memo.
        deferred: Store as Pending without moving money.
        locker_class: AccountLocker implementation (overridable in tests).

    Returns:
        The flushed Transaction (id assigned).

    Raises:
        InvalidTypeError, InvalidAmountError, MissingAccountError,
        CredentialRequiredError, ForbiddenError: Rejected before locking.
        AccountNotFoundError: A participating account does not exist.
        InvalidCredentialsError: The PIN does not match the source account.
        AccountUnavailableError: A participating account is not Active.
        InsufficientFundsError: The source cannot cover a withdraw/transfer.
        BusyAccountError: A row lock was unavailable or the deadline passed.
    """
    request = validate_transaction_request(
        actor,
        txn_type,
        source,
        amount,
        target=target,
        pin=pin,
        note=note,
        deferred=deferred,
    )

    async with unit_of_work_deadline():
        locks = await locker_class(db).acquire_all(request.account_numbers)

        if request.txn_type in DEBIT_TYPES and not actor.is_admin:
            if not verify_pin(request.pin, locks[request.source].pin_hash):
                raise InvalidCredentialsError("Invalid PIN")

        txn = Transaction(
            type=request.txn_type,
            account_number=request.source,
            target_account=request.target,
            amount_cents=request.amount_cents,
            fee_cents=0,
            note=request.note,
            created_by=actor.account_number,
        )

        if request.deferred:
            require_active(locks, request.account_numbers)
            txn.status = TransactionStatus.PENDING
        else:
            snapshot = apply_effect(
                locks,
                request.txn_type,
                request.source,
                request.amount_cents,
                target=request.target,
            )
            snapshot.apply_to(txn)
            txn.status = TransactionStatus.COMPLETED
            txn.completed_at = datetime.now(timezone.utc)

        db.add(txn)
        await db.flush()

        await audit_service.record(
            db,
            txn.id,
            AuditAction.CREATE,
            actor,
            details={"deferred": request.deferred},
        )

    logger.info(
        "Transaction created",
        extra={
            "transaction_id": txn.id,
            "type": txn.type.value,
            "status": txn.status.value,
            "amount_cents": txn.amount_cents,
            "source": txn.account_number,
            "target": txn.target_account,
            "actor": actor.account_number,
        },
    )
    return txn


# ---------------------------------------------------------------------------
# Single-transaction reads
# ---------------------------------------------------------------------------


def ensure_can_view(actor: Actor, txn: Transaction) -> None:
    """Owners of either leg and administrators may read a transaction."""
    if actor.is_admin:
        return
    if actor.account_number not in txn.account_numbers:
        raise ForbiddenError("You do not have access to this transaction")


async def get_transaction(db: AsyncSession, actor: Actor, transaction_id: int) -> Transaction:
    txn = await db.get(Transaction, transaction_id)
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    ensure_can_view(actor, txn)
    return txn


# ---------------------------------------------------------------------------
# listTransactions
# ---------------------------------------------------------------------------


@dataclass
class TransactionFilters:
    """Query filters shared by the JSON listing and the CSV export."""

    account: str | None = None
    type: str | None = None
    status: str | None = None
    direction: str | None = None
    month: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_amount_cents: int | None = None
    max_amount_cents: int | None = None
    q: str | None = None


@dataclass
class TransactionPage:
    transactions: list[Transaction]
    next_cursor: str | None


def encode_cursor(txn: Transaction) -> str:
    payload = json.dumps({"id": txn.id, "created_at": txn.created_at.isoformat()})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> tuple[int, datetime]:
    """
    Decode a cursor produced by encode_cursor().

    Raises:
        InvalidCursorError: If the cursor is not one of ours.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return int(payload["id"]), datetime.fromisoformat(payload["created_at"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        raise InvalidCursorError()


def _month_bounds(month: str) -> tuple[datetime, datetime]:
    match = _MONTH_RE.match(month.strip())
    if not match:
        raise InvalidFilterError("Invalid month format (YYYY-MM)")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise InvalidFilterError("Invalid month")
    start = datetime(year, mon, 1, tzinfo=timezone.utc)
    if mon == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, mon + 1, 1, tzinfo=timezone.utc)
    return start, end


def _scope_account(actor: Actor, account: str | None) -> str | None:
    """
    Non-admins only ever see transactions touching their own account;
    administrators may list everything or narrow to one account.
    """
    if actor.is_admin:
        return account
    if account is not None and account != actor.account_number:
        raise ForbiddenError("You can only list your own transactions")
    return actor.account_number


def _filter_conditions(filters: TransactionFilters, account: str | None) -> list:
    conditions = []

    if account:
        conditions.append(
            or_(Transaction.account_number == account, Transaction.target_account == account)
        )

    if filters.direction:
        direction = filters.direction.lower()
        if direction not in ("in", "out"):
            raise InvalidFilterError("direction must be 'in' or 'out'")
        if not account:
            raise InvalidFilterError("direction requires an account")
        if direction == "in":
            conditions.append(
                or_(
                    and_(
                        Transaction.type == TransactionType.DEPOSIT,
                        Transaction.account_number == account,
                    ),
                    and_(
                        Transaction.type == TransactionType.TRANSFER,
                        Transaction.target_account == account,
                    ),
                )
            )
        else:
            conditions.append(
                and_(
                    Transaction.type.in_([TransactionType.WITHDRAW, TransactionType.TRANSFER]),
                    Transaction.account_number == account,
                )
            )

    if filters.type:
        try:
            conditions.append(Transaction.type == TransactionType(filters.type.lower()))
        except ValueError:
            raise InvalidFilterError(f"Unknown transaction type {filters.type!r}")

    if filters.status:
        try:
            status = TransactionStatus(filters.status.capitalize())
        except ValueError:
            raise InvalidFilterError(f"Unknown transaction status {filters.status!r}")
        conditions.append(Transaction.status == status)

    if filters.month:
        start, end = _month_bounds(filters.month)
        conditions.append(Transaction.created_at >= start)
        conditions.append(Transaction.created_at < end)
    if filters.date_from is not None:
        conditions.append(Transaction.created_at >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(Transaction.created_at <= filters.date_to)

    if filters.min_amount_cents is not None:
        conditions.append(Transaction.amount_cents >= filters.min_amount_cents)
    if filters.max_amount_cents is not None:
        conditions.append(Transaction.amount_cents <= filters.max_amount_cents)

    q = (filters.q or "").strip()
    if q:
        like = f"%{q}%"
        matches = [
            Transaction.account_number.ilike(like),
            Transaction.target_account.ilike(like),
            Transaction.created_by.ilike(like),
            Transaction.note.ilike(like),
        ]
        if q.isdigit():
            matches.append(Transaction.id == int(q))
            matches.append(Transaction.amount_cents == int(q))
        conditions.append(or_(*matches))

    return conditions


def _clamp_limit(limit: int | None, cap: int) -> int:
    if not limit or limit < 1:
        limit = settings.LIST_LIMIT_DEFAULT
    return min(limit, cap)


async def _query_transactions(
    db: AsyncSession,
    actor: Actor,
    filters: TransactionFilters,
    cursor: str | None,
    limit: int,
) -> list[Transaction]:
    account = _scope_account(actor, filters.account)
    conditions = _filter_conditions(filters, account)

    if cursor:
        cursor_id, cursor_created_at = decode_cursor(cursor)
        conditions.append(
            or_(
                Transaction.created_at < cursor_created_at,
                and_(
                    Transaction.created_at == cursor_created_at,
                    Transaction.id < cursor_id,
                ),
            )
        )

    result = await db.execute(
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_transactions(
    db: AsyncSession,
    actor: Actor,
    filters: TransactionFilters,
    cursor: str | None = None,
    limit: int | None = None,
) -> TransactionPage:
    """
    One page of transactions, newest first.

    ``next_cursor`` is set only when a full page came back; pass it as
    ``cursor`` to fetch the next page.

    Raises:
        ForbiddenError: A non-admin asked for someone else's account.
        InvalidCursorError, InvalidFilterError: Malformed query.
    """
    limit = _clamp_limit(limit, settings.LIST_LIMIT_MAX)
    rows = await _query_transactions(db, actor, filters, cursor, limit)
    next_cursor = encode_cursor(rows[-1]) if len(rows) == limit else None
    return TransactionPage(transactions=rows, next_cursor=next_cursor)


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------

EXPORT_COLUMNS = [
    "id",
    "type",
    "status",
    "amount_cents",
    "fee_cents",
    "direction",
    "counterparty",
    "account_number",
    "target_account",
    "note",
    "created_at",
    "completed_at",
    "voided_at",
    "created_by",
    "source_balance_before_cents",
    "source_balance_after_cents",
    "target_balance_before_cents",
    "target_balance_after_cents",
]


def direction_for(txn: Transaction, account: str | None) -> tuple[str, str]:
    """(direction, counterparty) of ``txn`` as seen from ``account``."""
    if not account:
        return "", ""
    if txn.type == TransactionType.TRANSFER:
        if txn.target_account == account:
            return "IN", txn.account_number
        if txn.account_number == account:
            return "OUT", txn.target_account or ""
        return "", ""
    if txn.account_number != account:
        return "", ""
    return ("IN" if txn.type == TransactionType.DEPOSIT else "OUT"), ""


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


async def export_transactions(
    db: AsyncSession,
    actor: Actor,
    filters: TransactionFilters,
    cursor: str | None = None,
    limit: int | None = None,
) -> list[list]:
    """Header plus one row per transaction, in listing order."""
    limit = _clamp_limit(limit, settings.EXPORT_LIMIT_MAX)
    account = _scope_account(actor, filters.account)
    rows = await _query_transactions(db, actor, filters, cursor, limit)

    table: list[list] = [list(EXPORT_COLUMNS)]
    for txn in rows:
        direction, counterparty = direction_for(txn, account)
        table.append(
            [
                txn.id,
                txn.type.value,
                txn.status.value,
                txn.amount_cents,
                txn.fee_cents,
                direction,
                counterparty,
                txn.account_number,
                txn.target_account or "",
                txn.note or "",
                _iso(txn.created_at),
                _iso(txn.completed_at),
                _iso(txn.voided_at),
                txn.created_by,
                txn.source_balance_before_cents,
                txn.source_balance_after_cents,
                txn.target_balance_before_cents,
                txn.target_balance_after_cents,
            ]
        )
    return table


# ---------------------------------------------------------------------------
# getAccountBalance
# ---------------------------------------------------------------------------


@dataclass
class AccountBalance:
    account_number: str
    balance_cents: int
    status: AccountStatus
    computed_balance_cents: int

    @property
    def match(self) -> bool:
        return self.balance_cents == self.computed_balance_cents


async def computed_balance_cents(db: AsyncSession, account_number: str) -> int:
    """Replay every Completed transaction touching the account."""
    is_source = Transaction.account_number == account_number
    effect = case(
        (and_(Transaction.type == TransactionType.DEPOSIT, is_source), Transaction.amount_cents),
        (is_source, -Transaction.amount_cents),
        (Transaction.target_account == account_number, Transaction.amount_cents),
        else_=0,
    )
    result = await db.execute(
        select(func.coalesce(func.sum(effect), 0)).where(
            Transaction.status == TransactionStatus.COMPLETED,
            or_(is_source, Transaction.target_account == account_number),
        )
    )
    return int(result.scalar_one())


async def get_account_balance(
    db: AsyncSession, actor: Actor, account_number: str
) -> AccountBalance:
    """
    Read an account's stored balance next to the balance replayed from the
    ledger. ``match`` is False only if the two have drifted apart.
    """
    if not actor.can_act_on(account_number):
        raise ForbiddenError("You can only view your own balance")

    account = await db.get(Account, account_number)
    if account is None:
        raise AccountNotFoundError(account_number)

    return AccountBalance(
        account_number=account.account_number,
        balance_cents=account.balance_cents,
        status=account.status,
        computed_balance_cents=await computed_balance_cents(db, account_number),
    )
