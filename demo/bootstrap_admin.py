#!/usr/bin/env python3
"""
Create (or re-PIN) the administrator account. Run on the server.

Usage:
    python demo/bootstrap_admin.py --pin 9999
    python demo/bootstrap_admin.py --pin 9999 --account-number 0001
"""
import argparse
import asyncio

from account_ledger.database import unit_of_work
from account_ledger.services import account_service


async def bootstrap(pin: str, account_number: str | None) -> None:
    async with unit_of_work() as db:
        account = await account_service.bootstrap_admin(db, pin=pin, account_number=account_number)
        print(f"Administrator ready: {account.account_number}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the administrator account")
    parser.add_argument("--pin", required=True, help="4-digit PIN for the administrator")
    parser.add_argument("--account-number", default=None, help="Defaults to ADMIN_ACCOUNT_NUMBER")
    args = parser.parse_args()
    asyncio.run(bootstrap(args.pin, args.account_number))


if __name__ == "__main__":
    main()
