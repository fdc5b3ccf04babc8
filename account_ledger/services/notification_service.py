"""
Receipt notifications.

When a transaction is created Completed, or reaches Completed or Voided
through an amendment, the router commits the unit of work and then schedules
dispatch_receipt() as a FastAPI background task. A receipt is therefore only
ever sent for a state that is durably stored.

Delivery is best effort: dispatch_receipt() logs and swallows every failure,
and nothing here can roll back or fail the transaction it describes.

Dispatchers:
  - LoggingReceiptDispatcher: writes the receipt to the log (default, and
    what development and tests use)
  - ResendReceiptDispatcher: POSTs the receipt to the Resend e-mail API
    with httpx; selected when RESEND_API_KEY is set
"""

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from account_ledger.config import settings
from account_ledger.models.transaction import Transaction

logger = logging.getLogger(__name__)


def format_cents(cents: int | None) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100:,}.{cents % 100:02d}"


@dataclass(frozen=True)
class Receipt:
    """Immutable copy of a transaction's final state, safe to use after commit."""

    transaction_id: int
    type: str
    status: str
    amount_cents: int
    source_account: str
    target_account: str | None
    note: str | None
    occurred_at: datetime | None
    void_reason: str | None
    source_balance_before_cents: int | None
    source_balance_after_cents: int | None
    target_balance_before_cents: int | None
    target_balance_after_cents: int | None

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "Receipt":
        return cls(
            transaction_id=txn.id,
            type=txn.type.value,
            status=txn.status.value,
            amount_cents=txn.amount_cents,
            source_account=txn.account_number,
            target_account=txn.target_account,
            note=txn.note,
            occurred_at=txn.voided_at or txn.completed_at or txn.created_at,
            void_reason=txn.void_reason,
            source_balance_before_cents=txn.source_balance_before_cents,
            source_balance_after_cents=txn.source_balance_after_cents,
            target_balance_before_cents=txn.target_balance_before_cents,
            target_balance_after_cents=txn.target_balance_after_cents,
        )

    @property
    def reference(self) -> str:
        return f"VP-{self.transaction_id:06d}"

    @property
    def subject(self) -> str:
        return f"Receipt {self.reference} · {self.type.capitalize()} {self.status}"

    def rows(self) -> list[tuple[str, str]]:
        rows = [
            ("Reference", self.reference),
            ("Status", self.status),
            ("Type", self.type),
            ("Amount", format_cents(self.amount_cents)),
            ("From", self.source_account),
        ]
        if self.target_account:
            rows.append(("To", self.target_account))
        if self.occurred_at:
            rows.append(("Date", self.occurred_at.isoformat()))
        if self.note:
            rows.append(("Note", self.note))
        if self.void_reason:
            rows.append(("Void reason", self.void_reason))
        if self.source_balance_after_cents is not None:
            rows.append(("Source balance before", format_cents(self.source_balance_before_cents)))
            rows.append(("Source balance after", format_cents(self.source_balance_after_cents)))
        if self.target_balance_after_cents is not None:
            rows.append(("Target balance before", format_cents(self.target_balance_before_cents)))
            rows.append(("Target balance after", format_cents(self.target_balance_after_cents)))
        return rows

    def render_text(self) -> str:
        width = max(len(label) for label, _ in self.rows())
        lines = [self.subject, ""]
        lines.extend(f"{label.ljust(width)}  {value}" for label, value in self.rows())
        return "\n".join(lines)


class ReceiptDispatcher:
    """Delivers receipts. Implementations may raise; callers use dispatch_receipt()."""

    async def dispatch(self, receipt: Receipt) -> None:
        raise NotImplementedError


class LoggingReceiptDispatcher(ReceiptDispatcher):
    async def dispatch(self, receipt: Receipt) -> None:
        logger.info(
            "Receipt issued",
            extra={
                "transaction_id": receipt.transaction_id,
                "reference": receipt.reference,
                "status": receipt.status,
                "receipt": receipt.render_text(),
            },
        )


class ResendReceiptDispatcher(ReceiptDispatcher):
    """Sends receipts as plain-text e-mail through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        recipient: str,
        sender: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key
        self.recipient = recipient
        self.sender = sender or settings.EMAIL_FROM
        self.api_url = api_url or settings.RESEND_API_URL
        self.timeout = timeout or settings.RECEIPT_HTTP_TIMEOUT_SECONDS

    async def dispatch(self, receipt: Receipt) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [self.recipient],
                    "subject": receipt.subject,
                    "text": receipt.render_text(),
                },
            )
            response.raise_for_status()
        logger.info(
            "Receipt e-mailed",
            extra={"transaction_id": receipt.transaction_id, "reference": receipt.reference},
        )


def build_dispatcher() -> ReceiptDispatcher:
    """Resend when it is configured, otherwise the log."""
    if settings.RESEND_API_KEY and settings.RECEIPT_RECIPIENT:
        return ResendReceiptDispatcher(settings.RESEND_API_KEY, settings.RECEIPT_RECIPIENT)
    return LoggingReceiptDispatcher()


async def dispatch_receipt(dispatcher: ReceiptDispatcher, receipt: Receipt) -> None:
    """Deliver a receipt, logging instead of raising on failure."""
    try:
        await dispatcher.dispatch(receipt)
    except Exception:
        logger.exception(
            "Receipt delivery failed",
            extra={"transaction_id": receipt.transaction_id, "reference": receipt.reference},
        )
