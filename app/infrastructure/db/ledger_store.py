"""
Ledger Store

Abstract base class for the persisted source of truth for money:
account balances, position records and settlement ledger entries.

Every method that moves money is a single atomic unit: implementations
must apply the balance delta together with the position / ledger write
or not at all.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from app.domain.models.account import Account
from app.domain.models.position import Position, PositionStatus, ExitReason
from app.domain.models.ledger_entry import LedgerEntry


class LedgerStore(ABC):
    """
    Abstract ledger store.

    Implementations: MongoLedgerStore, InMemoryLedgerStore.
    """

    async def initialize(self) -> None:
        """Prepare storage (indexes, connections). Safe to call more than once."""
        return None

    async def close(self) -> None:
        """Release storage resources."""
        return None

    # ==================== ACCOUNTS ====================

    @abstractmethod
    async def create_account(
        self,
        balance: Decimal = Decimal("0"),
        account_id: Optional[str] = None
    ) -> Account:
        """
        Create an account with an initial balance.

        Funding flows (deposits, withdrawals) are owned by external
        collaborators; this exists for provisioning and tests.

        Raises:
            AccountAlreadyExistsError: If `account_id` is already taken
        """

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID, or None."""

    # ==================== POSITIONS ====================

    @abstractmethod
    async def open_position(self, position: Position) -> Position:
        """
        Atomically debit `position.margin` from the owning account and
        persist the position with status `open`.

        Raises:
            AccountNotFoundError: If the account does not exist
            InsufficientFundsError: If balance < margin (nothing is written)
        """

    @abstractmethod
    async def get_position(self, position_id: str) -> Optional[Position]:
        """Get position by ID, or None."""

    @abstractmethod
    async def find_positions(
        self,
        status: Optional[PositionStatus] = None,
        account_id: Optional[str] = None,
        symbol: Optional[str] = None
    ) -> List[Position]:
        """
        Find positions by optional filters.

        Closed positions are returned newest close first, others oldest
        creation first.
        """

    @abstractmethod
    async def claim_for_close(
        self,
        position_id: str,
        exit_price: Decimal,
        reason: ExitReason,
        claimed_at: datetime
    ) -> Optional[Position]:
        """
        Compare-and-set the position status from `open` to `closing`,
        recording the claimed exit price and reason.

        Returns:
            The claimed position, or None if it was not `open`
            (or does not exist). At most one concurrent caller wins.
        """

    @abstractmethod
    async def commit_settlement(
        self,
        position: Position,
        entry: LedgerEntry,
        exit_price: Decimal,
        pnl: Decimal,
        closed_at: datetime
    ) -> bool:
        """
        Single commit point of a close: credit the account with
        `entry.amount`, mark the position `closed` and append `entry`.

        Idempotent on the position ID: if a ledger entry already exists
        nothing is credited again.

        Returns:
            True if this call credited the account, False if the
            settlement had already been committed.
        """

    @abstractmethod
    async def find_stuck_closing(self, older_than: datetime) -> List[Position]:
        """Positions in `closing` whose claim is older than `older_than`."""

    # ==================== LEDGER ====================

    @abstractmethod
    async def get_ledger_entry(self, position_id: str) -> Optional[LedgerEntry]:
        """Settlement record for a position, or None."""

    @abstractmethod
    async def find_ledger_entries(self, account_id: str) -> List[LedgerEntry]:
        """Settlement records of an account, newest first."""
