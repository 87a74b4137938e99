"""
Ledger Entry Domain Model

Append-only settlement record. At most one exists per position; its presence
means the position's margin and PnL have already been returned to the account.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import Field

from app.domain.models.position import ExitReason
from app.shared.models import DomainModel, new_id, utc_now


class LedgerEntry(DomainModel):
    """
    Ledger Entry Domain Model

    Attributes:
        amount: Credited to the account (margin + pnl, floored at zero)
        pnl: Realized PnL of the position
        shortfall: Loss beyond margin that could not be recovered
        reason: Exit reason that closed the position
    """

    id: str = Field(default_factory=new_id)
    position_id: str
    account_id: str
    amount: Decimal
    pnl: Decimal
    shortfall: Decimal = Decimal("0")
    reason: ExitReason
    timestamp: datetime = Field(default_factory=utc_now)
