"""Utility functions package."""

from app.utils.logger import setup_logging, get_logger, app_logger
from app.utils.validators import (
    to_decimal,
    validate_positive_decimal,
    validate_leverage,
    validate_symbol,
    validate_non_empty_string,
)

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "app_logger",
    # Validators
    "to_decimal",
    "validate_positive_decimal",
    "validate_leverage",
    "validate_symbol",
    "validate_non_empty_string",
]
