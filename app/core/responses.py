"""
Standardized error responses for API endpoints.

Domain errors are rendered in one consistent envelope.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """
    Error detail model for error responses.

    Attributes:
        code: Error code (e.g., "INSUFFICIENT_FUNDS", "POSITION_NOT_FOUND")
        message: Detailed error message
    """
    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Detailed error message")


class ErrorResponse(BaseModel):
    """Error envelope returned for every domain error."""
    status_code: int = Field(..., description="HTTP status code")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Any] = Field(default=None, description="Always null on error")
    error: ErrorDetail


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    error_message: str
) -> dict:
    """
    Create an error response.

    Args:
        status_code: HTTP status code (400, 403, 404, 503, etc.)
        message: General error message
        error_code: Specific error code
        error_message: Detailed error message

    Returns:
        dict: Standardized error response

    Example:
        >>> error_response(400, "Operation failed", "INSUFFICIENT_FUNDS", "Balance is below required margin 100")
        {
            "status_code": 400,
            "message": "Operation failed",
            "data": None,
            "error": {
                "code": "INSUFFICIENT_FUNDS",
                "message": "Balance is below required margin 100"
            }
        }
    """
    return ErrorResponse(
        status_code=status_code,
        message=message,
        error=ErrorDetail(code=error_code, message=error_message)
    ).model_dump()
