"""
Shared Models

Base class for domain models and helpers shared by domain entities.
"""

from datetime import datetime, timezone
from decimal import Decimal
from bson import ObjectId
from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new entity id (ObjectId hex, valid for both ledger stores)."""
    return str(ObjectId())


class DomainModel(BaseModel):
    """
    Base domain model for all domain entities.

    Provides:
    - Proper Pydantic v2 configuration
    - Decimal money fields serialized as strings (no float rounding)
    - Enum values in serialized output
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        json_encoders={
            ObjectId: str,
            Decimal: str,
        },
        # Use enum values in JSON
        use_enum_values=True,
        validate_assignment=True,
    )
