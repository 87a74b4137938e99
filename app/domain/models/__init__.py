"""
Domain Models

Pure Pydantic domain models with no database dependencies.
"""

from app.shared.models import DomainModel
from app.domain.models.account import Account
from app.domain.models.position import (
    Position,
    PositionStatus,
    PositionSide,
    ExitReason,
)
from app.domain.models.ledger_entry import LedgerEntry
from app.domain.models.results import (
    CloseOutcome,
    CloseResult,
    ScanPositionResult,
    ScanReport,
    RecoveryReport,
    TickReport,
)

__all__ = [
    "DomainModel",
    "Account",
    "Position",
    "PositionStatus",
    "PositionSide",
    "ExitReason",
    "LedgerEntry",
    "CloseOutcome",
    "CloseResult",
    "ScanPositionResult",
    "ScanReport",
    "RecoveryReport",
    "TickReport",
]
