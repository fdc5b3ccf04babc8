"""
Tests for transaction request validation.

Verifies:
  - Unknown or missing types are rejected as invalid_type
  - Amounts must be positive whole cents; numeric strings are accepted
  - Missing source/target accounts and self-transfers are rejected
  - withdraw/transfer require a PIN unless the actor is an administrator
  - Non-admins may only transact on their own account
  - Errors are reported in a fixed order (type, amount, accounts, PIN, owner)
"""

import pytest

from account_ledger.exceptions import (
    CredentialRequiredError,
    ForbiddenError,
    InvalidAmountError,
    InvalidTypeError,
    MissingAccountError,
)
from account_ledger.models.transaction import TransactionType
from account_ledger.security import Actor
from account_ledger.services.validation import parse_amount_cents, validate_transaction_request

OWNER = Actor(account_number="1001")
ADMIN = Actor(account_number="0000", is_admin=True)


class TestTransactionType:

    async def test_known_types_are_parsed(self):
        for raw, expected in (
            ("deposit", TransactionType.DEPOSIT),
            ("WITHDRAW", TransactionType.WITHDRAW),
            (" transfer ", TransactionType.TRANSFER),
        ):
            request = validate_transaction_request(
                OWNER, raw, "1001", 100, target="1002", pin="1234"
            )
            assert request.txn_type == expected

    async def test_unknown_type_rejected(self):
        with pytest.raises(InvalidTypeError):
            validate_transaction_request(OWNER, "refund", "1001", 100)

    async def test_missing_type_rejected(self):
        with pytest.raises(InvalidTypeError):
            validate_transaction_request(OWNER, None, "1001", 100)


class TestAmount:

    @pytest.mark.parametrize("raw", [0, -5, "0", "-1", "abc", "", None, True, 10.5, "12.34", "NaN", "Infinity"])
    async def test_invalid_amounts_rejected(self, raw):
        with pytest.raises(InvalidAmountError):
            parse_amount_cents(raw)

    async def test_integer_and_numeric_string_accepted(self):
        assert parse_amount_cents(1500) == 1500
        assert parse_amount_cents("1500") == 1500
        assert parse_amount_cents(" 25 ") == 25

    async def test_whole_valued_float_accepted(self):
        """10.0 is a whole number of cents, unlike 10.5."""
        assert parse_amount_cents(10.0) == 10


class TestAccounts:

    async def test_missing_source_rejected(self):
        with pytest.raises(MissingAccountError):
            validate_transaction_request(OWNER, "deposit", None, 100)

    async def test_blank_source_rejected(self):
        with pytest.raises(MissingAccountError):
            validate_transaction_request(OWNER, "deposit", "   ", 100)

    async def test_transfer_requires_target(self):
        with pytest.raises(MissingAccountError):
            validate_transaction_request(OWNER, "transfer", "1001", 100, pin="1234")

    async def test_transfer_to_self_rejected(self):
        with pytest.raises(MissingAccountError):
            validate_transaction_request(
                OWNER, "transfer", "1001", 100, target="1001", pin="1234"
            )

    async def test_target_ignored_for_deposit(self):
        request = validate_transaction_request(OWNER, "deposit", "1001", 100, target="1002")
        assert request.target is None
        assert request.account_numbers == ["1001"]


class TestCredentials:

    async def test_withdraw_without_pin_rejected(self):
        with pytest.raises(CredentialRequiredError):
            validate_transaction_request(OWNER, "withdraw", "1001", 100)

    async def test_transfer_without_pin_rejected(self):
        with pytest.raises(CredentialRequiredError):
            validate_transaction_request(OWNER, "transfer", "1001", 100, target="1002")

    async def test_deposit_needs_no_pin(self):
        request = validate_transaction_request(OWNER, "deposit", "1001", 100)
        assert request.pin is None

    async def test_admin_needs_no_pin(self):
        request = validate_transaction_request(ADMIN, "withdraw", "1001", 100)
        assert request.amount_cents == 100


class TestAuthority:

    async def test_non_admin_cannot_use_other_account(self):
        with pytest.raises(ForbiddenError):
            validate_transaction_request(OWNER, "deposit", "2002", 100)

    async def test_non_admin_can_transfer_to_other_account(self):
        request = validate_transaction_request(
            OWNER, "transfer", "1001", 100, target="2002", pin="1234"
        )
        assert request.account_numbers == ["1001", "2002"]

    async def test_admin_can_use_any_account(self):
        request = validate_transaction_request(ADMIN, "deposit", "2002", 100)
        assert request.source == "2002"


class TestErrorPrecedence:

    async def test_type_checked_before_amount(self):
        with pytest.raises(InvalidTypeError):
            validate_transaction_request(OWNER, "bogus", None, -1)

    async def test_amount_checked_before_accounts(self):
        with pytest.raises(InvalidAmountError):
            validate_transaction_request(OWNER, "transfer", None, 0)

    async def test_pin_checked_before_ownership(self):
        with pytest.raises(CredentialRequiredError):
            validate_transaction_request(OWNER, "withdraw", "2002", 100)
