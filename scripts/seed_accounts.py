#!/usr/bin/env python3
"""
Seed script to create funded accounts in the MongoDB ledger.

Usage:
    python scripts/seed_accounts.py                      # one account, balance 10000
    python scripts/seed_accounts.py 25000 acc-alice      # explicit balance and ID
"""

import asyncio
import sys
from decimal import Decimal, InvalidOperation

from app.config.database import connect_to_mongodb, close_mongodb_connection, get_client
from app.config.settings import settings
from app.infrastructure.db.mongo_store import MongoLedgerStore


async def seed_account(balance: Decimal, account_id: str = None) -> bool:
    """Create one account with `balance` in the configured database."""
    print("Connecting to MongoDB...")
    print(f"URL: {settings.MONGODB_URL}")
    print(f"Database: {settings.MONGODB_DB_NAME}")
    print()

    try:
        db = await connect_to_mongodb()
        print("✅ MongoDB connection successful!")

        store = MongoLedgerStore(get_client(), db)
        await store.initialize()

        if account_id and await store.get_account(account_id):
            print(f"⚠️  Account {account_id} already exists, skipping")
            return True

        account = await store.create_account(balance=balance, account_id=account_id)
        print(f"✅ Created account {account.id} with balance {account.balance}")
        return True

    except Exception as e:
        print(f"❌ Error: {str(e)}")
        return False

    finally:
        await close_mongodb_connection()


if __name__ == "__main__":
    try:
        balance = Decimal(sys.argv[1]) if len(sys.argv) > 1 else Decimal("10000")
    except InvalidOperation:
        print(f"❌ Invalid balance: {sys.argv[1]}")
        sys.exit(1)
    account_id = sys.argv[2] if len(sys.argv) > 2 else None

    success = asyncio.run(seed_account(balance, account_id))
    sys.exit(0 if success else 1)
