"""
Position Domain Model

Pure Pydantic domain model for margin positions.
No database dependencies - business logic only.
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pydantic import Field

from app.shared.models import DomainModel, new_id, utc_now


# ==================== ENUMS ====================

class PositionStatus(str, Enum):
    """Position status lifecycle"""
    PENDING = "pending"        # Margin reservation in flight
    OPEN = "open"              # Margin locked, position active
    CLOSING = "closing"        # Close claimed, settlement not yet committed
    CLOSED = "closed"          # Settlement committed (terminal)


class PositionSide(str, Enum):
    """Position side"""
    LONG = "long"
    SHORT = "short"


class ExitReason(str, Enum):
    """Why a position was closed. Declaration order is evaluation priority for automatic exits."""
    LIQUIDATION = "liquidation"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    MANUAL_CLOSE = "manual_close"


# ==================== MAIN POSITION MODEL ====================

class Position(DomainModel):
    """
    Position Domain Model

    Pure Pydantic model representing a leveraged position in the domain.
    No database methods - the ledger store persists it and the position
    engine is the only component that changes its status.

    Usage:
        position = Position(
            account_id=account_id,
            symbol="BTC/USDT",
            side=PositionSide.LONG,
            size=Decimal("1000"),
            leverage=Decimal("10"),
            margin=Decimal("100"),
            entry_price=Decimal("50000"),
            liquidation_price=Decimal("45000"),
        )
        position = await store.open_position(position)
    """

    # Identity
    id: str = Field(default_factory=new_id)
    account_id: str

    # Position Basics
    symbol: str
    side: PositionSide
    status: PositionStatus = PositionStatus.PENDING

    # Sizing
    size: Decimal
    leverage: Decimal
    margin: Decimal

    # Entry / Risk
    entry_price: Decimal
    liquidation_price: Decimal = Field(allow_inf_nan=True)
    take_profit: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None

    # Claimed exit (written by the open -> closing compare-and-set)
    pending_exit_price: Optional[Decimal] = None
    pending_exit_reason: Optional[ExitReason] = None

    # Exit (null until closed)
    exit_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None
    close_reason: Optional[ExitReason] = None

    # Timing
    created_at: datetime = Field(default_factory=utc_now)
    opened_at: Optional[datetime] = None
    closing_started_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)

    def is_open(self) -> bool:
        """Check if position is open"""
        return self.status == PositionStatus.OPEN

    def is_closing(self) -> bool:
        """Check if position is claimed but not yet settled"""
        return self.status == PositionStatus.CLOSING

    def is_closed(self) -> bool:
        """Check if position is closed"""
        return self.status == PositionStatus.CLOSED

    @property
    def is_long(self) -> bool:
        return self.side == PositionSide.LONG
