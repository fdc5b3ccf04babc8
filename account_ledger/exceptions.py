"""
Custom exception classes and the FastAPI exception handler.

The service layer raises domain-specific errors (like InsufficientFundsError)
without importing HTTP concepts. The handler registered here translates
them into a consistent JSON body:

    {"detail": "...", "error_type": "insufficient_funds", "retryable": false}

Every error carries a stable ``error_type`` code that clients can switch on,
plus the HTTP status it maps to. Extra, error-specific fields (for example
the requested and available cents on InsufficientFundsError) are merged
into the body.

Exception hierarchy:
    LedgerAPIError (base)
    ├── input errors (400)         - rejected before any lock is taken
    │   ├── InvalidTypeError
    │   ├── InvalidAmountError
    │   ├── MissingAccountError
    │   ├── CredentialRequiredError
    │   ├── InvalidCursorError
    │   ├── InvalidFilterError
    │   └── InvalidActionError
    ├── authorization errors       - never retried automatically
    │   ├── InvalidCredentialsError (401)
    │   └── ForbiddenError (403)
    ├── state errors               - caller must re-fetch before retrying
    │   ├── AccountLockedError (403)
    │   ├── AccountNotFoundError (404)
    │   ├── TransactionNotFoundError (404)
    │   ├── AccountUnavailableError (409)
    │   ├── InvalidStateTransitionError (409)
    │   └── DuplicateAccountError (409)
    ├── BusyAccountError (409)     - transient lock contention, retryable
    └── InsufficientFundsError (422) - business rule, terminal for the amount

All of these are raised inside a unit of work and cause a full rollback.
The one exception is the login failure counter: errors constructed with
``persist=True`` tell ``get_db`` to commit the session before re-raising.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

# lock_not_available, query_canceled (lock/statement timeout), deadlock_detected
_CONTENTION_SQLSTATES = frozenset({"55P03", "57014", "40P01"})


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerAPIError(Exception):
    """Base exception for all Account Ledger domain errors."""

    status_code: int = 400
    error_type: str = "ledger_error"
    retryable: bool = False

    def __init__(self, detail: str = "An error occurred", persist: bool = False):
        self.detail = detail
        self.persist = persist
        super().__init__(self.detail)

    def extra_fields(self) -> dict:
        """Additional fields merged into the JSON error body."""
        return {}


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class InvalidTypeError(LedgerAPIError):
    """Raised when the transaction type is not deposit, withdraw or transfer."""

    error_type = "invalid_type"

    def __init__(self, txn_type: object):
        self.txn_type = txn_type
        super().__init__(
            f"Invalid transaction type {txn_type!r}. Use deposit, withdraw or transfer."
        )


class InvalidAmountError(LedgerAPIError):
    """Raised when an amount is missing, non-numeric, fractional or not positive."""

    error_type = "invalid_amount"

    def __init__(self, detail: str = "Amount must be a positive whole number of cents"):
        super().__init__(detail)


class MissingAccountError(LedgerAPIError):
    error_type = "missing_account"

    def __init__(self, detail: str = "Missing account(s)"):
        super().__init__(detail)


class CredentialRequiredError(LedgerAPIError):
    error_type = "credential_required"

    def __init__(self):
        super().__init__("PIN is required for this transaction.")


class InvalidCursorError(LedgerAPIError):
    error_type = "invalid_cursor"

    def __init__(self):
        super().__init__("Invalid pagination cursor")


class InvalidFilterError(LedgerAPIError):
    """Raised for malformed listing filters (e.g. a month that is not YYYY-MM)."""

    error_type = "invalid_filter"


class InvalidActionError(LedgerAPIError):
    error_type = "invalid_action"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Unknown action {action!r}. Use complete, void or note.")


# ---------------------------------------------------------------------------
# Authorization errors
# ---------------------------------------------------------------------------

class InvalidCredentialsError(LedgerAPIError):
    """Raised when an account number / PIN pair does not match."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self, detail: str = "Invalid account number or PIN", persist: bool = False):
        super().__init__(detail, persist=persist)


class ForbiddenError(LedgerAPIError):
    """Raised when an actor attempts to act on a resource they don't own."""

    status_code = 403
    error_type = "forbidden"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# State errors
# ---------------------------------------------------------------------------

class AccountLockedError(LedgerAPIError):
    status_code = 403
    error_type = "account_locked"

    def __init__(self, account_number: str, persist: bool = False):
        self.account_number = account_number
        super().__init__(
            "Account locked. Please contact support.", persist=persist
        )


class AccountNotFoundError(LedgerAPIError):
    """Raised when a requested account does not exist."""

    status_code = 404
    error_type = "account_not_found"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account {account_number} not found")

    def extra_fields(self) -> dict:
        return {"account_number": self.account_number}


class TransactionNotFoundError(LedgerAPIError):
    status_code = 404
    error_type = "transaction_not_found"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class AccountUnavailableError(LedgerAPIError):
    """Raised when a participating account is not Active."""

    status_code = 409
    error_type = "account_unavailable"

    def __init__(self, account_number: str, status: str):
        self.account_number = account_number
        self.status = status
        super().__init__(f"Account {account_number} is unavailable ({status})")

    def extra_fields(self) -> dict:
        return {"account_number": self.account_number, "account_status": self.status}


class InvalidStateTransitionError(LedgerAPIError):
    status_code = 409
    error_type = "invalid_state_transition"

    def __init__(self, transaction_id: int, current_status: str, action: str):
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} transaction {transaction_id} in status {current_status}"
        )

    def extra_fields(self) -> dict:
        return {"current_status": self.current_status, "action": self.action}


class DuplicateAccountError(LedgerAPIError):
    status_code = 409
    error_type = "duplicate_account"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account number {account_number} already exists")


# ---------------------------------------------------------------------------
# Contention and business-rule errors
# ---------------------------------------------------------------------------

class BusyAccountError(LedgerAPIError):
    """
    Raised when an account row lock cannot be acquired immediately, or when
    a unit of work exceeds its deadline. Safe to retry with backoff.
    """

    status_code = 409
    error_type = "busy_account"
    retryable = True

    def __init__(self, account_number: str | None = None):
        self.account_number = account_number
        super().__init__("Account is busy. Please try again.")


class InsufficientFundsError(LedgerAPIError):
    """
    Raised when a withdrawal, transfer or reversal would cause a negative balance.

    Attributes:
        account_number: The account that lacks sufficient funds.
        requested_cents: The amount that was to be debited.
        available_cents: The current balance of the account.
    """

    status_code = 422  # Unprocessable Entity: valid request rejected by business rules
    error_type = "insufficient_funds"

    def __init__(self, account_number: str, requested_cents: int, available_cents: int):
        self.account_number = account_number
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient funds: requested {requested_cents} cents, "
            f"available {available_cents} cents"
        )

    def extra_fields(self) -> dict:
        return {
            "requested_cents": self.requested_cents,
            "available_cents": self.available_cents,
        }


def is_lock_contention(exc: DBAPIError) -> bool:
    """
    True when a driver error means "someone else holds the lock".

    PostgreSQL drivers expose the SQLSTATE as ``pgcode`` (psycopg) or
    ``sqlstate`` (asyncpg); SQLite only reports "database is locked".
    """
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _CONTENTION_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_response(exc: LedgerAPIError) -> JSONResponse:
    content = {
        "detail": exc.detail,
        "error_type": exc.error_type,
        "retryable": exc.retryable,
    }
    content.update(exc.extra_fields())
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain exception handlers with the FastAPI application.

    Called once during app construction in main.py.
    """

    @app.exception_handler(LedgerAPIError)
    async def ledger_error_handler(request: Request, exc: LedgerAPIError) -> JSONResponse:
        return _error_response(exc)

    # SQLite takes its write lock on the first statement of a request, which
    # may run outside the account locker (e.g. in the auth dependency).
    @app.exception_handler(DBAPIError)
    async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
        if is_lock_contention(exc):
            return _error_response(BusyAccountError())
        logger.error(
            "Unhandled database error", exc_info=exc, extra={"path": request.url.path}
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error_type": "internal_error",
                "retryable": False,
            },
        )
