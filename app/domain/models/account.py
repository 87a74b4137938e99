"""
Account Domain Model

Pure Pydantic domain model for trading accounts.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import Field

from app.shared.models import DomainModel, new_id, utc_now


class Account(DomainModel):
    """
    Account Domain Model

    Holds the available (unlocked) balance. Margin of open and closing
    positions is not part of `balance`; it returns through settlement.
    """

    # Identity
    id: str = Field(default_factory=new_id)

    # Funds
    balance: Decimal = Decimal("0")

    # Metadata
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
