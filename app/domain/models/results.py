"""
Engine Result Models

Typed results returned by the position engine and the scanner.
"""

from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pydantic import Field

from app.domain.models.position import Position, ExitReason
from app.domain.models.ledger_entry import LedgerEntry
from app.shared.models import DomainModel, utc_now


class CloseOutcome(str, Enum):
    """Outcome of a close attempt"""
    SETTLED = "settled"                # This caller won the claim and committed settlement
    ALREADY_CLOSED = "already_closed"  # Another caller claimed it first (benign)


class CloseResult(DomainModel):
    """Result of Close / ManualClose"""
    outcome: CloseOutcome
    position_id: str
    position: Optional[Position] = None
    ledger_entry: Optional[LedgerEntry] = None

    @property
    def settled(self) -> bool:
        return self.outcome == CloseOutcome.SETTLED


class ScanPositionResult(DomainModel):
    """What happened to one position during a scan"""
    position_id: str
    reason: Optional[ExitReason] = None
    outcome: Optional[CloseOutcome] = None
    error: Optional[str] = None


class ScanReport(DomainModel):
    """Result of ScanAndClose over one price"""
    price: Decimal
    evaluated: int = 0
    triggered: int = 0
    closed: int = 0
    already_closed: int = 0
    errors: int = 0
    results: List[ScanPositionResult] = Field(default_factory=list)


class RecoveryReport(DomainModel):
    """Result of a recovery sweep over stuck `closing` positions"""
    examined: int = 0
    settled: int = 0
    finalized: int = 0  # ledger entry already existed, position only marked closed
    failed: int = 0
    failed_position_ids: List[str] = Field(default_factory=list)


class TickReport(DomainModel):
    """Result of one scanner tick"""
    started_at: datetime = Field(default_factory=utc_now)
    open_positions: int = 0
    symbols: int = 0
    skipped_symbols: List[str] = Field(default_factory=list)
    scans: Dict[str, ScanReport] = Field(default_factory=dict)
    recovery: Optional[RecoveryReport] = None

    @property
    def closed(self) -> int:
        return sum(report.closed for report in self.scans.values())
