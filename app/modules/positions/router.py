"""
Position Management Router

FastAPI endpoints for position management.
"""

from fastapi import APIRouter, Depends, status

from app.core.dependencies import get_engine, get_current_account_id
from app.domain.services.position_calculator import compute_unrealized_pnl
from app.domain.services.position_engine import PositionEngine
from app.modules.positions.schemas import (
    OpenPositionRequest,
    PositionResponse,
    OpenPositionResponse,
    PositionListResponse,
    OpenPositionListResponse,
    ClosePositionResponse,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/positions", tags=["positions"])


# ==================== OPEN POSITION ====================

@router.post("", response_model=PositionResponse, status_code=status.HTTP_201_CREATED)
async def open_position(
    request: OpenPositionRequest,
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """Open a leveraged position at the current server-side price"""
    position = await engine.open_position(
        account_id=account_id,
        symbol=request.symbol,
        side=request.side,
        size=request.size,
        leverage=request.leverage,
        take_profit=request.take_profit,
        stop_loss=request.stop_loss,
    )
    return PositionResponse.from_position(position)


# ==================== LIST POSITIONS ====================

@router.get("/open", response_model=OpenPositionListResponse)
async def list_open_positions(
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """List open positions with unrealized PnL at the current price"""
    positions = await engine.list_open_positions(account_id)
    prices = await engine.get_mark_prices(p.symbol for p in positions)

    items = []
    for position in positions:
        mark_price = prices.get(position.symbol)
        unrealized = None
        if mark_price is not None:
            unrealized = compute_unrealized_pnl(position, mark_price, engine.money_places)
        items.append(OpenPositionResponse(
            **PositionResponse.from_position(position).model_dump(),
            mark_price=mark_price,
            unrealized_pnl=unrealized,
        ))

    return OpenPositionListResponse(items=items, total=len(items))


@router.get("/history", response_model=PositionListResponse)
async def list_position_history(
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """List closed positions, newest first"""
    positions = await engine.list_history(account_id)
    return PositionListResponse(
        items=[PositionResponse.from_position(p) for p in positions],
        total=len(positions)
    )


# ==================== GET POSITION ====================

@router.get("/{position_id}", response_model=PositionResponse)
async def get_position(
    position_id: str,
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """Get position by ID"""
    position = await engine.get_position(position_id, account_id)
    return PositionResponse.from_position(position)


# ==================== CLOSE POSITION ====================

@router.post("/{position_id}/close", response_model=ClosePositionResponse)
async def close_position(
    position_id: str,
    account_id: str = Depends(get_current_account_id),
    engine: PositionEngine = Depends(get_engine)
):
    """
    Close a position at the current price.

    Returns outcome `already_closed` (200) if the position was closed
    by another request or by the scanner first.
    """
    result = await engine.manual_close(position_id, account_id)
    logger.info(f"Manual close of {position_id} by {account_id}: {result.outcome}")
    return ClosePositionResponse.from_result(result)
