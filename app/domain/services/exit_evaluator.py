"""
Exit Evaluator

Stateless decision of whether a position must exit at a given price.
"""

from decimal import Decimal
from typing import Optional

from app.domain.models.position import Position, PositionStatus, ExitReason

ONE = Decimal("1")


def is_liquidated(position: Position, price: Decimal) -> bool:
    """Liquidation only exists for borrowed exposure (leverage > 1)."""
    if position.leverage <= ONE:
        return False
    if position.is_long:
        return price <= position.liquidation_price
    return price >= position.liquidation_price


def is_take_profit_hit(position: Position, price: Decimal) -> bool:
    if position.take_profit is None:
        return False
    if position.is_long:
        return price >= position.take_profit
    return price <= position.take_profit


def is_stop_loss_hit(position: Position, price: Decimal) -> bool:
    if position.stop_loss is None:
        return False
    if position.is_long:
        return price <= position.stop_loss
    return price >= position.stop_loss


def evaluate(position: Position, current_price: Decimal) -> Optional[ExitReason]:
    """
    Decide which exit condition, if any, fires for `position` at `current_price`.

    Priority when several hold at once: liquidation > take_profit > stop_loss.
    Liquidation goes first because it is mandatory risk containment.

    Only `open` positions are evaluated; any other status returns None.

    Args:
        position: Position to evaluate
        current_price: Current market price

    Returns:
        ExitReason that fired, or None
    """
    if position.status != PositionStatus.OPEN:
        return None

    if is_liquidated(position, current_price):
        return ExitReason.LIQUIDATION
    if is_take_profit_hit(position, current_price):
        return ExitReason.TAKE_PROFIT
    if is_stop_loss_hit(position, current_price):
        return ExitReason.STOP_LOSS
    return None
