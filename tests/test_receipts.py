"""
Tests for receipt formatting and delivery.

Verifies:
  - Cent amounts are formatted with a thousands separator and two decimals
  - Receipts carry the transaction's final state and render as text
  - The Resend dispatcher is only selected when fully configured
  - dispatch_receipt() never raises
"""

from datetime import datetime, timezone

import pytest

from account_ledger.config import settings
from account_ledger.models.transaction import Transaction, TransactionStatus, TransactionType
from account_ledger.services.notification_service import (
    LoggingReceiptDispatcher,
    Receipt,
    ReceiptDispatcher,
    ResendReceiptDispatcher,
    build_dispatcher,
    dispatch_receipt,
    format_cents,
)


def _voided_transfer() -> Transaction:
    return Transaction(
        id=42,
        type=TransactionType.TRANSFER,
        status=TransactionStatus.VOIDED,
        account_number="1001",
        target_account="1002",
        amount_cents=123456,
        fee_cents=0,
        note="rent",
        created_by="1001",
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        completed_at=datetime(2026, 3, 1, 0, 5, tzinfo=timezone.utc),
        voided_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
        void_reason="dispute",
        source_balance_before_cents=200000,
        source_balance_after_cents=76544,
        target_balance_before_cents=0,
        target_balance_after_cents=123456,
    )


class TestFormatting:

    @pytest.mark.parametrize(
        "cents, expected",
        [(0, "0.00"), (5, "0.05"), (1050, "10.50"), (123456789, "1,234,567.89"), (-250, "-2.50"), (None, "-")],
    )
    async def test_format_cents(self, cents, expected):
        assert format_cents(cents) == expected

    async def test_receipt_from_transaction(self):
        receipt = Receipt.from_transaction(_voided_transfer())
        assert receipt.reference == "VP-000042"
        assert receipt.status == "Voided"
        assert receipt.occurred_at == datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert receipt.subject == "Receipt VP-000042 · Transfer Voided"

    async def test_render_text(self):
        text = Receipt.from_transaction(_voided_transfer()).render_text()
        lines = text.splitlines()
        assert lines[0] == "Receipt VP-000042 · Transfer Voided"
        assert any(line.startswith("Amount") and line.endswith("1,234.56") for line in lines)
        assert any(line.startswith("To") and line.endswith("1002") for line in lines)
        assert any(line.startswith("Void reason") and line.endswith("dispute") for line in lines)
        assert any(line.startswith("Source balance after") and line.endswith("765.44") for line in lines)

    async def test_deposit_has_no_target_rows(self):
        txn = _voided_transfer()
        txn.type = TransactionType.DEPOSIT
        txn.target_account = None
        txn.target_balance_before_cents = None
        txn.target_balance_after_cents = None
        labels = [label for label, _ in Receipt.from_transaction(txn).rows()]
        assert "To" not in labels
        assert "Target balance after" not in labels


class TestDispatcherSelection:

    async def test_logging_by_default(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", None)
        monkeypatch.setattr(settings, "RECEIPT_RECIPIENT", None)
        assert isinstance(build_dispatcher(), LoggingReceiptDispatcher)

    async def test_key_without_recipient_uses_logging(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(settings, "RECEIPT_RECIPIENT", None)
        assert isinstance(build_dispatcher(), LoggingReceiptDispatcher)

    async def test_resend_when_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(settings, "RECEIPT_RECIPIENT", "ops@example.com")
        dispatcher = build_dispatcher()
        assert isinstance(dispatcher, ResendReceiptDispatcher)
        assert dispatcher.recipient == "ops@example.com"


class FailingDispatcher(ReceiptDispatcher):
    async def dispatch(self, receipt):
        raise ConnectionError("unreachable")


class TestDispatch:

    async def test_failure_is_logged_not_raised(self, caplog):
        receipt = Receipt.from_transaction(_voided_transfer())
        await dispatch_receipt(FailingDispatcher(), receipt)
        assert "Receipt delivery failed" in caplog.text

    async def test_logging_dispatcher(self, caplog):
        caplog.set_level("INFO")
        await dispatch_receipt(LoggingReceiptDispatcher(), Receipt.from_transaction(_voided_transfer()))
        assert "Receipt issued" in caplog.text
