"""
Database Infrastructure

Ledger store interface and implementations.
"""

from app.infrastructure.db.ledger_store import LedgerStore
from app.infrastructure.db.memory_store import InMemoryLedgerStore
from app.infrastructure.db.mongo_store import MongoLedgerStore

__all__ = [
    "LedgerStore",
    "InMemoryLedgerStore",
    "MongoLedgerStore",
]
