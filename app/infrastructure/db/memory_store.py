"""
In-Memory Ledger Store

Process-local ledger store for demo mode and tests.
A single asyncio lock serializes every mutation, which gives each
store method the all-or-nothing semantics of a database transaction.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict

from app.domain.models.account import Account
from app.domain.models.position import Position, PositionStatus, ExitReason
from app.domain.models.ledger_entry import LedgerEntry
from app.infrastructure.db.ledger_store import LedgerStore
from app.shared.exceptions import AccountAlreadyExistsError, AccountNotFoundError, InsufficientFundsError
from app.shared.models import utc_now
from app.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryLedgerStore(LedgerStore):
    """
    In-memory ledger store.

    Records are copied on the way in and out, so callers never hold a
    reference to stored state.
    """

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._positions: Dict[str, Position] = {}
        self._ledger: Dict[str, LedgerEntry] = {}  # position_id -> entry
        self._lock = asyncio.Lock()

    # ==================== ACCOUNTS ====================

    async def create_account(
        self,
        balance: Decimal = Decimal("0"),
        account_id: Optional[str] = None
    ) -> Account:
        account = Account(balance=balance) if account_id is None else Account(id=account_id, balance=balance)
        async with self._lock:
            if account.id in self._accounts:
                raise AccountAlreadyExistsError(f"Account {account.id} already exists")
            self._accounts[account.id] = account.model_copy(deep=True)
        logger.debug(f"Account {account.id} created with balance {balance}")
        return account

    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    # ==================== POSITIONS ====================

    async def open_position(self, position: Position) -> Position:
        async with self._lock:
            account = self._accounts.get(position.account_id)
            if account is None:
                raise AccountNotFoundError(f"Account {position.account_id} not found")
            if account.balance < position.margin:
                raise InsufficientFundsError(
                    f"Balance {account.balance} is below required margin {position.margin}"
                )

            now = utc_now()
            stored = position.model_copy(deep=True)
            stored.status = PositionStatus.OPEN
            stored.opened_at = now
            stored.updated_at = now

            account.balance = account.balance - position.margin
            account.updated_at = now
            self._positions[stored.id] = stored

        return stored.model_copy(deep=True)

    async def get_position(self, position_id: str) -> Optional[Position]:
        position = self._positions.get(position_id)
        return position.model_copy(deep=True) if position else None

    async def find_positions(
        self,
        status: Optional[PositionStatus] = None,
        account_id: Optional[str] = None,
        symbol: Optional[str] = None
    ) -> List[Position]:
        results = [
            p for p in self._positions.values()
            if (status is None or p.status == status)
            and (account_id is None or p.account_id == account_id)
            and (symbol is None or p.symbol == symbol)
        ]
        if status == PositionStatus.CLOSED:
            results.sort(key=lambda p: p.closed_at, reverse=True)
        else:
            results.sort(key=lambda p: p.created_at)
        return [p.model_copy(deep=True) for p in results]

    async def claim_for_close(
        self,
        position_id: str,
        exit_price: Decimal,
        reason: ExitReason,
        claimed_at: datetime
    ) -> Optional[Position]:
        async with self._lock:
            position = self._positions.get(position_id)
            if position is None or position.status != PositionStatus.OPEN:
                return None
            position.status = PositionStatus.CLOSING
            position.pending_exit_price = exit_price
            position.pending_exit_reason = reason
            position.closing_started_at = claimed_at
            position.updated_at = claimed_at
            return position.model_copy(deep=True)

    async def commit_settlement(
        self,
        position: Position,
        entry: LedgerEntry,
        exit_price: Decimal,
        pnl: Decimal,
        closed_at: datetime
    ) -> bool:
        async with self._lock:
            stored = self._positions.get(position.id)
            if stored is None:
                raise ValueError(f"Position {position.id} does not exist")

            if position.id in self._ledger:
                # Already settled. Make sure the position reflects it.
                if stored.status != PositionStatus.CLOSED:
                    self._mark_closed(stored, self._ledger[position.id], exit_price, pnl, closed_at)
                return False

            if stored.status != PositionStatus.CLOSING:
                raise ValueError(
                    f"Position {position.id} is {stored.status}, expected closing"
                )

            account = self._accounts.get(stored.account_id)
            if account is None:
                raise AccountNotFoundError(f"Account {stored.account_id} not found")

            account.balance = account.balance + entry.amount
            account.updated_at = closed_at
            self._mark_closed(stored, entry, exit_price, pnl, closed_at)
            self._ledger[position.id] = entry.model_copy(deep=True)
            return True

    @staticmethod
    def _mark_closed(
        stored: Position,
        entry: LedgerEntry,
        exit_price: Decimal,
        pnl: Decimal,
        closed_at: datetime
    ) -> None:
        stored.status = PositionStatus.CLOSED
        stored.exit_price = exit_price
        stored.pnl = pnl
        stored.close_reason = entry.reason
        stored.closed_at = closed_at
        stored.updated_at = closed_at

    async def find_stuck_closing(self, older_than: datetime) -> List[Position]:
        return [
            p.model_copy(deep=True)
            for p in self._positions.values()
            if p.status == PositionStatus.CLOSING
            and p.closing_started_at is not None
            and p.closing_started_at <= older_than
        ]

    # ==================== LEDGER ====================

    async def get_ledger_entry(self, position_id: str) -> Optional[LedgerEntry]:
        entry = self._ledger.get(position_id)
        return entry.model_copy(deep=True) if entry else None

    async def find_ledger_entries(self, account_id: str) -> List[LedgerEntry]:
        entries = [e for e in self._ledger.values() if e.account_id == account_id]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return [e.model_copy(deep=True) for e in entries]
