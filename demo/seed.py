#!/usr/bin/env python3
"""
Demo seed script - populates a running server with sample accounts and
transactions.

!! NOT FOR PRODUCTION !!
Accounts are created with known PINs. Run demo/bootstrap_admin.py first so
the administrator can complete the pending transfer at the end.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py --admin-pin 9999

    # Custom server URL:
    python demo/seed.py --admin-pin 9999 --base-url http://localhost:9000

Login credentials after seeding:
    ┌────────────────┬──────┬───────────────┐
    │ Account        │ PIN  │ Name          │
    ├────────────────┼──────┼───────────────┤
    │ 100001         │ 1111 │ Alice Chen    │
    │ 100002         │ 2222 │ Bob Martinez  │
    │ 100003         │ 3333 │ Carol Nguyen  │
    └────────────────┴──────┴───────────────┘
"""

import argparse
import asyncio
import sys

import httpx

from account_ledger.config import settings

MEMBERS = [
    {"account_number": "100001", "pin": "1111", "name": "Alice Chen", "opening_balance_cents": 850_00},
    {"account_number": "100002", "pin": "2222", "name": "Bob Martinez", "opening_balance_cents": 1_200_00},
    {"account_number": "100003", "pin": "3333", "name": "Carol Nguyen", "opening_balance_cents": 3_200_00},
]


def log(msg: str) -> None:
    print(f"  {msg}")


def cents_to_dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup_or_login(client: httpx.AsyncClient, member: dict) -> str:
    resp = await client.post("/auth/signup", json=member)
    if resp.status_code == 409:
        resp = await client.post(
            "/auth/login",
            json={"account_number": member["account_number"], "pin": member["pin"]},
        )
    resp.raise_for_status()
    return resp.json()["token"]


async def transact(client: httpx.AsyncClient, token: str, **body) -> dict:
    resp = await client.post("/transactions", json=body, headers=auth_header(token))
    resp.raise_for_status()
    return resp.json()


async def seed(base_url: str, admin_pin: str) -> None:
    print("\n========================================")
    print("  DEMO SEED - NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        try:
            (await client.get("/health")).raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {base_url}")
            print("  Start the server first: uvicorn account_ledger.main:app --reload\n")
            sys.exit(1)

        tokens = {}
        for member in MEMBERS:
            tokens[member["account_number"]] = await signup_or_login(client, member)
            log(f"{member['name']} ({member['account_number']}) opened with "
                f"{cents_to_dollars(member['opening_balance_cents'])}")

        alice, bob, carol = (m["account_number"] for m in MEMBERS)

        await transact(client, tokens[alice], type="deposit", source_account=alice,
                       amount_cents=250_00, note="Paycheck")
        await transact(client, tokens[bob], type="withdraw", source_account=bob,
                       amount_cents=60_00, pin="2222", note="ATM")
        await transact(client, tokens[carol], type="transfer", source_account=carol,
                       target_account=alice, amount_cents=120_00, pin="3333", note="Dinner")
        pending = await transact(client, tokens[alice], type="transfer", source_account=alice,
                                 target_account=bob, amount_cents=75_00, pin="1111",
                                 note="Rent share", deferred=True)
        log(f"Pending transfer #{pending['id']} created")

        resp = await client.post(
            "/auth/login",
            json={"account_number": settings.ADMIN_ACCOUNT_NUMBER, "pin": admin_pin},
        )
        if resp.status_code == 200:
            admin_token = resp.json()["token"]
            resp = await client.patch(
                f"/transactions/{pending['id']}",
                json={"action": "complete"},
                headers=auth_header(admin_token),
            )
            resp.raise_for_status()
            log(f"Administrator completed transfer #{pending['id']}")
        else:
            log("Administrator login failed; pending transfer left as Pending")

        print("\nBalances:")
        for member in MEMBERS:
            resp = await client.get(
                f"/accounts/{member['account_number']}/balance",
                headers=auth_header(tokens[member["account_number"]]),
            )
            resp.raise_for_status()
            log(f"{member['name']:<14s} {cents_to_dollars(resp.json()['balance_cents'])}")
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a running ledger with demo data")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--admin-pin", required=True)
    args = parser.parse_args()
    asyncio.run(seed(args.base_url, args.admin_pin))


if __name__ == "__main__":
    main()
