"""
Custom validators for money and market inputs.

Provides reusable validators shared by request schemas and the position engine.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any


SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]{1,15}(/[A-Z0-9]{1,15})?$")


def to_decimal(value: Any, field_name: str = "Field") -> Decimal:
    """
    Convert a numeric input to Decimal without passing through binary floats.

    Floats are converted via their shortest repr, so 0.1 becomes Decimal("0.1")
    rather than the exact binary expansion.

    Args:
        value: Number or numeric string
        field_name: Name of the field (for error message)

    Returns:
        Decimal: Converted value

    Raises:
        ValueError: If value is not a finite number

    Example:
        >>> to_decimal("50000.5", "price")
        Decimal('50000.5')
        >>> to_decimal("abc", "price")
        ValueError: price must be a number
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValueError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field_name} must be a finite number")
    return result


def validate_positive_decimal(value: Any, field_name: str = "Field") -> Decimal:
    """
    Validate that a number is positive and return it as Decimal.

    Example:
        >>> validate_positive_decimal("10", "size")
        Decimal('10')
        >>> validate_positive_decimal(-5, "size")
        ValueError: size must be positive
    """
    result = to_decimal(value, field_name)
    if result <= 0:
        raise ValueError(f"{field_name} must be positive")
    return result


def validate_leverage(value: Any) -> Decimal:
    """
    Validate leverage is a number >= 1.

    Example:
        >>> validate_leverage("10")
        Decimal('10')
        >>> validate_leverage("0.5")
        ValueError: leverage must be at least 1
    """
    result = to_decimal(value, "leverage")
    if result < 1:
        raise ValueError("leverage must be at least 1")
    return result


def validate_symbol(symbol: str) -> str:
    """
    Normalize and validate a trading symbol.

    Accepts "BTC/USDT" or "BTCUSDT" style symbols, case-insensitive.

    Example:
        >>> validate_symbol(" btc/usdt ")
        'BTC/USDT'
    """
    if not isinstance(symbol, str):
        raise ValueError("symbol must be a string")
    normalized = symbol.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValueError(f"Invalid symbol: {symbol!r}")
    return normalized


def validate_non_empty_string(value: str, field_name: str = "Field") -> str:
    """
    Validate that string is not empty or whitespace only.

    Example:
        >>> validate_non_empty_string("  ", "account_id")
        ValueError: account_id cannot be empty
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()
