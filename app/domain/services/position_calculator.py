"""
Position Calculator

Pure functions for margin, liquidation price, PnL and settlement.
No I/O. All money is Decimal and quantized to a fixed number of places
with banker's rounding. Arithmetic runs with the 34 significant digits
of Decimal128, the type money is persisted as.
"""

from dataclasses import dataclass
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN, localcontext
from typing import Union

from app.domain.models.position import Position, PositionSide
from app.shared.exceptions import InvalidParametersError

MONEY_PLACES = 8
DECIMAL128_DIGITS = 34

MONEY_CONTEXT = Context(prec=DECIMAL128_DIGITS, rounding=ROUND_HALF_EVEN)

ZERO = Decimal("0")
ONE = Decimal("1")
INFINITY = Decimal("Infinity")

Side = Union[PositionSide, str]


@dataclass(frozen=True)
class Settlement:
    """Amount returned to the account and the unrecovered loss, if any."""
    amount: Decimal
    shortfall: Decimal

    @property
    def has_shortfall(self) -> bool:
        return self.shortfall > ZERO


def quantize(value: Decimal, places: int = MONEY_PLACES) -> Decimal:
    """
    Round to `places` decimals. Infinite values pass through unchanged.

    Raises:
        InvalidParametersError: If the rounded value needs more than
            34 significant digits
    """
    if not value.is_finite():
        return value
    with localcontext(MONEY_CONTEXT):
        try:
            return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)
        except InvalidOperation:
            raise InvalidParametersError(f"Amount out of range at {places} decimal places: {value}")


def _side(side: Side) -> PositionSide:
    try:
        return PositionSide(side)
    except ValueError:
        raise InvalidParametersError(f"Invalid side: {side!r}")


def _check_leverage(leverage: Decimal) -> None:
    if not leverage.is_finite() or leverage < ONE:
        raise InvalidParametersError(f"Leverage must be >= 1, got {leverage}")


def compute_margin(size: Decimal, leverage: Decimal, places: int = MONEY_PLACES) -> Decimal:
    """
    Margin locked for a position: size / leverage.

    Raises:
        InvalidParametersError: If size <= 0, leverage < 1, or the margin
            rounds to zero at `places` decimals
    """
    if not size.is_finite() or size <= ZERO:
        raise InvalidParametersError(f"Size must be positive, got {size}")
    _check_leverage(leverage)
    with localcontext(MONEY_CONTEXT):
        margin = quantize(size / leverage, places)
    if margin <= ZERO:
        raise InvalidParametersError(
            f"Margin for size {size} at leverage {leverage} rounds to zero"
        )
    return margin


def compute_liquidation_price(
    entry_price: Decimal,
    leverage: Decimal,
    side: Side,
    places: int = MONEY_PLACES,
) -> Decimal:
    """
    Price at which unrealized loss consumes the whole margin.

    long:  entry * (1 - 1/leverage)
    short: entry * (1 + 1/leverage)

    With leverage == 1 liquidation is unreachable: 0 for long and
    Decimal("Infinity") for short.
    """
    if not entry_price.is_finite() or entry_price <= ZERO:
        raise InvalidParametersError(f"Entry price must be positive, got {entry_price}")
    _check_leverage(leverage)
    position_side = _side(side)

    if leverage == ONE:
        return ZERO if position_side == PositionSide.LONG else INFINITY

    with localcontext(MONEY_CONTEXT):
        if position_side == PositionSide.LONG:
            return quantize(entry_price * (ONE - ONE / leverage), places)
        return quantize(entry_price * (ONE + ONE / leverage), places)


def compute_pnl(
    entry_price: Decimal,
    exit_price: Decimal,
    size: Decimal,
    side: Side,
    places: int = MONEY_PLACES,
) -> Decimal:
    """
    Realized PnL on the notional size.

    long:  (exit - entry) / entry * size
    short: (entry - exit) / entry * size
    """
    if not entry_price.is_finite() or entry_price <= ZERO:
        raise InvalidParametersError(f"Entry price must be positive, got {entry_price}")
    if not exit_price.is_finite() or exit_price < ZERO:
        raise InvalidParametersError(f"Exit price must be a non-negative number, got {exit_price}")

    with localcontext(MONEY_CONTEXT):
        if _side(side) == PositionSide.LONG:
            move = exit_price - entry_price
        else:
            move = entry_price - exit_price
        return quantize(move / entry_price * size, places)


def compute_unrealized_pnl(position: Position, mark_price: Decimal, places: int = MONEY_PLACES) -> Decimal:
    """PnL the position would realize if closed at `mark_price`."""
    return compute_pnl(position.entry_price, mark_price, position.size, position.side, places)


def compute_settlement(margin: Decimal, pnl: Decimal, places: int = MONEY_PLACES) -> Settlement:
    """
    Amount credited back on close: margin + pnl, floored at zero.

    A price gap through the liquidation price can make margin + pnl negative.
    The deficit is reported as `shortfall` and is never charged against the
    account's other funds.
    """
    with localcontext(MONEY_CONTEXT):
        gross = quantize(margin + pnl, places)
    if gross < ZERO:
        return Settlement(amount=quantize(ZERO, places), shortfall=-gross)
    return Settlement(amount=gross, shortfall=quantize(ZERO, places))
