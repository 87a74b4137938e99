"""
Position Management Schemas

Pydantic schemas for position API requests and responses.
Money fields are Decimals and serialize as strings.
"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator

from app.domain.models.position import Position, PositionSide, ExitReason
from app.domain.models.results import CloseOutcome, CloseResult
from app.modules.accounts.schemas import LedgerEntryResponse
from app.utils.validators import to_decimal, validate_symbol


# ==================== REQUEST SCHEMAS ====================

class OpenPositionRequest(BaseModel):
    """Open position request. The entry price is always fetched server-side."""
    symbol: str = Field(..., description="Trading pair, e.g. BTC/USDT")
    side: PositionSide
    size: Decimal = Field(..., description="Notional size")
    leverage: Decimal = Field(..., description="Leverage, at least 1")
    take_profit: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol_format(cls, v: str) -> str:
        return validate_symbol(v)

    @field_validator("size", "leverage", "take_profit", "stop_loss", mode="before")
    @classmethod
    def parse_decimal(cls, v, info):
        if v is None:
            return v
        return to_decimal(v, info.field_name)


# ==================== RESPONSE SCHEMAS ====================

class PositionResponse(BaseModel):
    """Position response"""
    id: str
    account_id: str
    symbol: str
    side: str
    status: str
    size: Decimal
    leverage: Decimal
    margin: Decimal
    entry_price: Decimal
    liquidation_price: Decimal = Field(allow_inf_nan=True)
    take_profit: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    exit_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None
    close_reason: Optional[str] = None
    created_at: datetime
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_position(cls, position: Position) -> "PositionResponse":
        return cls(**position.model_dump(include=set(cls.model_fields.keys())))


class OpenPositionResponse(PositionResponse):
    """Open position entry with mark price and unrealized PnL (null when no price)"""
    mark_price: Optional[Decimal] = None
    unrealized_pnl: Optional[Decimal] = None


class PositionListResponse(BaseModel):
    """Position list response"""
    items: List[PositionResponse]
    total: int


class OpenPositionListResponse(BaseModel):
    """Open positions list response"""
    items: List[OpenPositionResponse]
    total: int


class ClosePositionResponse(BaseModel):
    """Close position response"""
    outcome: CloseOutcome
    position: Optional[PositionResponse] = None
    ledger_entry: Optional[LedgerEntryResponse] = None
    reason: Optional[ExitReason] = None

    @classmethod
    def from_result(cls, result: CloseResult) -> "ClosePositionResponse":
        return cls(
            outcome=result.outcome,
            position=PositionResponse.from_position(result.position) if result.position else None,
            ledger_entry=LedgerEntryResponse.from_entry(result.ledger_entry) if result.ledger_entry else None,
            reason=result.ledger_entry.reason if result.ledger_entry else None,
        )
