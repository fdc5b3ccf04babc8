"""
Tests for creating transactions (POST /transactions).

Verifies:
  - Deposits, withdrawals and transfers move balances and store snapshots
  - Immediate transactions are Completed with one "create" audit entry
  - Insufficient funds is rejected and stores nothing
  - PINs are required and checked for withdraw/transfer (admins exempt)
  - Only Active accounts take part in a transaction
  - Deferred transactions are stored Pending without moving money
  - Members can only debit their own account
  - Money is conserved across a sequence of operations
"""

from account_ledger.models.account import AccountStatus
from account_ledger.models.transaction import TransactionStatus
from account_ledger.models.transaction_audit import AuditAction


class TestDeposit:

    async def test_deposit_success(self, client, make_account, auth_headers, balance_of, fetch_audit):
        """Deposit 500 into an account holding 1000."""
        await make_account("1001", balance_cents=1000)

        response = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "1001", "amount_cents": 500},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Completed"
        assert data["type"] == "deposit"
        assert data["source_balance_before_cents"] == 1000
        assert data["source_balance_after_cents"] == 1500
        assert data["target_balance_before_cents"] is None
        assert data["completed_at"] is not None
        assert data["created_by"] == "1001"
        assert await balance_of("1001") == 1500

        audit = await fetch_audit(data["id"])
        assert [entry.action for entry in audit] == [AuditAction.CREATE]
        assert audit[0].details == {"deferred": False}

    async def test_amount_as_numeric_string(self, client, make_account, auth_headers, balance_of):
        await make_account("1001")
        response = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "1001", "amount_cents": "250"},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 201
        assert await balance_of("1001") == 250

    async def test_invalid_amounts_rejected(self, client, make_account, auth_headers):
        await make_account("1001")
        for amount in (0, -100, 10.5, "abc", True, None):
            response = await client.post(
                "/transactions",
                json={"type": "deposit", "source_account": "1001", "amount_cents": amount},
                headers=auth_headers("1001"),
            )
            assert response.status_code == 400, amount
            assert response.json()["error_type"] == "invalid_amount"

    async def test_invalid_type_rejected(self, client, make_account, auth_headers):
        await make_account("1001")
        response = await client.post(
            "/transactions",
            json={"type": "refund", "source_account": "1001", "amount_cents": 100},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "invalid_type"

    async def test_requires_auth(self, client):
        response = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "1001", "amount_cents": 100},
        )
        assert response.status_code == 401


class TestWithdraw:

    async def test_withdraw_success(self, client, make_account, auth_headers, balance_of):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 400, "pin": "1234"},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 201
        assert response.json()["source_balance_after_cents"] == 600
        assert await balance_of("1001") == 600

    async def test_withdraw_exact_balance(self, client, make_account, auth_headers, balance_of):
        """Draining an account to exactly zero is allowed."""
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 1000, "pin": "1234"},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 201
        assert await balance_of("1001") == 0

    async def test_insufficient_funds_stores_nothing(
        self, client, make_account, auth_headers, balance_of, fetch_transactions
    ):
        """Withdraw 2000 from 1000: rejected, balance unchanged, no ledger row."""
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 2000, "pin": "1234"},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error_type"] == "insufficient_funds"
        assert body["requested_cents"] == 2000
        assert body["available_cents"] == 1000
        assert body["retryable"] is False

        assert await balance_of("1001") == 1000
        assert await fetch_transactions() == []

    async def test_pin_required(self, client, make_account, auth_headers, balance_of):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 100},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "credential_required"
        assert await balance_of("1001") == 1000

    async def test_wrong_pin(self, client, make_account, auth_headers, balance_of, fetch_transactions):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 100, "pin": "9999"},
            headers=auth_headers("1001"),
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "invalid_credentials"
        assert await balance_of("1001") == 1000
        assert await fetch_transactions() == []

    async def test_admin_withdraws_without_pin(
        self, client, make_account, admin_headers, balance_of
    ):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={"type": "withdraw", "source_account": "1001", "amount_cents": 100},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["created_by"] == "0000"
        assert await balance_of("1001") == 900


class TestTransfer:

    async def test_transfer_success(self, client, make_account, auth_headers, balance_of):
        """Transfer 300 from A (1000) to B (200)."""
        await make_account("1001", balance_cents=1000)
        await make_account("1002", balance_cents=200)

        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1002",
                "amount_cents": 300,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Completed"
        assert data["target_account"] == "1002"
        assert data["source_balance_before_cents"] == 1000
        assert data["source_balance_after_cents"] == 700
        assert data["target_balance_before_cents"] == 200
        assert data["target_balance_after_cents"] == 500

        assert await balance_of("1001") == 700
        assert await balance_of("1002") == 500

    async def test_transfer_to_self_rejected(self, client, make_account, auth_headers):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1001",
                "amount_cents": 100,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "missing_account"

    async def test_transfer_to_unknown_account(
        self, client, make_account, auth_headers, balance_of, fetch_transactions
    ):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "9999",
                "amount_cents": 100,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "account_not_found"
        assert await balance_of("1001") == 1000
        assert await fetch_transactions() == []

    async def test_transfer_insufficient_funds(self, client, make_account, auth_headers, balance_of):
        await make_account("1001", balance_cents=100)
        await make_account("1002", balance_cents=0)
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1002",
                "amount_cents": 101,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 422
        assert await balance_of("1001") == 100
        assert await balance_of("1002") == 0

    async def test_transfer_to_locked_account(self, client, make_account, auth_headers, balance_of):
        await make_account("1001", balance_cents=1000)
        await make_account("1002", status=AccountStatus.LOCKED)
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1002",
                "amount_cents": 100,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error_type"] == "account_unavailable"
        assert body["account_number"] == "1002"
        assert body["account_status"] == "Locked"
        assert await balance_of("1001") == 1000


class TestAuthorization:

    async def test_cannot_debit_another_account(
        self, client, make_account, auth_headers, balance_of
    ):
        await make_account("1001", balance_cents=1000)
        await make_account("1002", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1002",
                "target_account": "1001",
                "amount_cents": 100,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 403
        assert response.json()["error_type"] == "forbidden"
        assert await balance_of("1002") == 1000

    async def test_cannot_read_foreign_transaction(self, client, make_account, auth_headers):
        await make_account("1001")
        await make_account("1002")
        created = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "1002", "amount_cents": 100},
            headers=auth_headers("1002"),
        )
        response = await client.get(
            f"/transactions/{created.json()['id']}", headers=auth_headers("1001")
        )
        assert response.status_code == 403

    async def test_transfer_visible_to_both_parties(self, client, make_account, auth_headers):
        await make_account("1001", balance_cents=500)
        await make_account("1002")
        created = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1002",
                "amount_cents": 100,
                "pin": "1234",
            },
            headers=auth_headers("1001"),
        )
        txn_id = created.json()["id"]
        for number in ("1001", "1002"):
            response = await client.get(f"/transactions/{txn_id}", headers=auth_headers(number))
            assert response.status_code == 200

    async def test_unknown_transaction(self, client, make_account, auth_headers):
        await make_account("1001")
        response = await client.get("/transactions/424242", headers=auth_headers("1001"))
        assert response.status_code == 404
        assert response.json()["error_type"] == "transaction_not_found"

    async def test_admin_deposit_to_missing_account(self, client, admin_headers):
        response = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "9999", "amount_cents": 100},
            headers=admin_headers,
        )
        assert response.status_code == 404


class TestDeferred:

    async def test_deferred_is_pending_without_effect(
        self, client, make_account, auth_headers, balance_of, fetch_audit
    ):
        await make_account("1001", balance_cents=1000)
        await make_account("1002")
        response = await client.post(
            "/transactions",
            json={
                "type": "transfer",
                "source_account": "1001",
                "target_account": "1002",
                "amount_cents": 5000,
                "pin": "1234",
                "deferred": True,
            },
            headers=auth_headers("1001"),
        )
        # Funds are checked at completion, not at creation
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Pending"
        assert data["completed_at"] is None
        assert data["source_balance_before_cents"] is None
        assert data["source_balance_after_cents"] is None

        assert await balance_of("1001") == 1000
        assert await balance_of("1002") == 0

        audit = await fetch_audit(data["id"])
        assert len(audit) == 1
        assert audit[0].details == {"deferred": True}

    async def test_deferred_still_checks_pin(self, client, make_account, auth_headers, fetch_transactions):
        await make_account("1001", balance_cents=1000)
        response = await client.post(
            "/transactions",
            json={
                "type": "withdraw",
                "source_account": "1001",
                "amount_cents": 100,
                "pin": "0000",
                "deferred": True,
            },
            headers=auth_headers("1001"),
        )
        assert response.status_code == 401
        assert await fetch_transactions() == []

    async def test_deferred_requires_active_accounts(self, client, make_account, admin_headers):
        await make_account("1001", status=AccountStatus.ARCHIVED)
        response = await client.post(
            "/transactions",
            json={"type": "deposit", "source_account": "1001", "amount_cents": 100, "deferred": True},
            headers=admin_headers,
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "account_unavailable"


class TestConservation:

    async def test_money_is_conserved(
        self, client, make_account, auth_headers, admin_headers, balance_of, fetch_transactions
    ):
        """
        Sum of balances always equals deposits minus withdrawals, and
        failed operations leave no trace.
        """
        await make_account("1001", balance_cents=0)
        await make_account("1002", balance_cents=0)
        await make_account("1003", balance_cents=0)

        operations = [
            ("1001", {"type": "deposit", "source_account": "1001", "amount_cents": 1000}),
            ("1002", {"type": "deposit", "source_account": "1002", "amount_cents": 500}),
            ("1001", {"type": "transfer", "source_account": "1001", "target_account": "1003",
                      "amount_cents": 250, "pin": "1234"}),
            ("1003", {"type": "withdraw", "source_account": "1003", "amount_cents": 50, "pin": "1234"}),
            ("1002", {"type": "transfer", "source_account": "1002", "target_account": "1001",
                      "amount_cents": 600, "pin": "1234"}),  # fails: insufficient
            ("1003", {"type": "transfer", "source_account": "1003", "target_account": "1002",
                      "amount_cents": 200, "pin": "1234"}),
        ]
        for number, body in operations:
            await client.post("/transactions", json=body, headers=auth_headers(number))

        balances = [await balance_of(n) for n in ("1001", "1002", "1003")]
        assert balances == [750, 700, 0]
        assert sum(balances) == 1000 + 500 - 50

        stored = await fetch_transactions()
        assert len(stored) == 5
        assert all(t.status == TransactionStatus.COMPLETED for t in stored)

        for number in ("1001", "1002", "1003"):
            response = await client.get(f"/accounts/{number}/balance", headers=admin_headers)
            assert response.json()["match"] is True
