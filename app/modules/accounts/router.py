"""
Account Router

FastAPI endpoints for the calling account's balance and ledger.
"""

from fastapi import APIRouter, Depends

from app.core.dependencies import get_engine, get_current_account_id
from app.domain.services.position_engine import PositionEngine
from app.modules.accounts.schemas import (
    AccountResponse,
    LedgerEntryResponse,
    LedgerEntryListResponse,
)

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("/me", response_model=AccountResponse)
async def get_my_account(
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """Get the calling account's available balance"""
    account = await engine.get_account(account_id)
    return AccountResponse.from_account(account)


@router.get("/me/ledger", response_model=LedgerEntryListResponse)
async def list_my_ledger(
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """List settlement records of the calling account"""
    await engine.get_account(account_id)
    entries = await engine.list_ledger_entries(account_id)
    return LedgerEntryListResponse(
        items=[LedgerEntryResponse.from_entry(entry) for entry in entries],
        total=len(entries)
    )
