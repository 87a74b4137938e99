"""
Account Schemas

Pydantic schemas for account API responses.
"""

from typing import List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel

from app.domain.models.account import Account
from app.domain.models.ledger_entry import LedgerEntry


class AccountResponse(BaseModel):
    """Account response. `balance` excludes margin locked in open positions."""
    id: str
    balance: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(**account.model_dump())


class LedgerEntryResponse(BaseModel):
    """Settlement record"""
    id: str
    position_id: str
    account_id: str
    amount: Decimal
    pnl: Decimal
    shortfall: Decimal
    reason: str
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryResponse":
        return cls(**entry.model_dump())


class LedgerEntryListResponse(BaseModel):
    """Ledger entries, newest first"""
    items: List[LedgerEntryResponse]
    total: int
