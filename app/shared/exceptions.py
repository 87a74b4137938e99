"""
Custom exception classes for the application.

All custom exceptions inherit from base AppException for consistent error handling.
"""

from typing import Optional


class AppException(Exception):
    """
    Base application exception.

    All custom exceptions should inherit from this class.

    Attributes:
        message: Error message
        code: Error code
        status_code: HTTP status code
    """

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        status_code: int = 500
    ):
        """
        Initialize AppException.

        Args:
            message: Error message
            code: Error code
            status_code: HTTP status code
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


# Validation Exceptions

class InvalidParametersError(AppException):
    """Bad size, leverage, symbol or exit levels."""

    def __init__(self, message: str = "Invalid parameters"):
        super().__init__(message=message, code="INVALID_PARAMETERS", status_code=422)


class InsufficientFundsError(AppException):
    """Account balance does not cover the required margin."""

    def __init__(self, message: str = "Insufficient funds"):
        super().__init__(message=message, code="INSUFFICIENT_FUNDS", status_code=400)


# Resource Exceptions

class AccountNotFoundError(AppException):
    """Account not found."""

    def __init__(self, message: str = "Account not found"):
        super().__init__(message=message, code="ACCOUNT_NOT_FOUND", status_code=404)


class AccountAlreadyExistsError(AppException):
    """Account ID already taken."""

    def __init__(self, message: str = "Account already exists"):
        super().__init__(message=message, code="ACCOUNT_ALREADY_EXISTS", status_code=409)


class PositionNotFoundError(AppException):
    """Position not found."""

    def __init__(self, message: str = "Position not found"):
        super().__init__(message=message, code="POSITION_NOT_FOUND", status_code=404)


# Authorization Exceptions

class UnauthorizedError(AppException):
    """Requesting account does not own the resource."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message=message, code="UNAUTHORIZED", status_code=403)


# External Service Exceptions

class PriceUnavailableError(AppException):
    """
    Price oracle could not return a price.

    Transient: the scanner retries on its next tick.
    """

    def __init__(self, message: str = "Price unavailable", symbol: Optional[str] = None):
        self.symbol = symbol
        super().__init__(message=message, code="PRICE_UNAVAILABLE", status_code=503)


# Settlement Exceptions

class SettlementCommitFailedError(AppException):
    """
    Settlement commit failed after the position was claimed for closing.

    The position stays in `closing` until the recovery sweep settles it.
    """

    def __init__(self, message: str = "Settlement commit failed", position_id: Optional[str] = None):
        self.position_id = position_id
        super().__init__(message=message, code="SETTLEMENT_COMMIT_FAILED", status_code=500)


# Database Exceptions

class DatabaseError(AppException):
    """Database error."""

    def __init__(self, message: str = "Database error"):
        super().__init__(message=message, code="DATABASE_ERROR", status_code=500)
