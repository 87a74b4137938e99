"""
Core dependencies for FastAPI routes.

Provides the engine runtime and the caller's account identity.
"""

from typing import Optional
from fastapi import Header, HTTPException, Request, status

from app.core.runtime import EngineRuntime
from app.domain.services.position_engine import PositionEngine
from app.utils.logger import get_logger

logger = get_logger(__name__)


def get_runtime(request: Request) -> EngineRuntime:
    """
    FastAPI dependency to get the engine runtime built during lifespan startup.

    Returns:
        EngineRuntime: Shared runtime
    """
    return request.app.state.runtime


def get_engine(request: Request) -> PositionEngine:
    """
    FastAPI dependency to get the position engine.

    Example:
        @router.get("/open")
        async def list_open(engine: PositionEngine = Depends(get_engine)):
            ...
    """
    return get_runtime(request).engine


async def get_current_account_id(
    x_account_id: Optional[str] = Header(default=None, alias="X-Account-Id")
) -> str:
    """
    Get the calling account from the X-Account-Id header.

    Authentication happens upstream (gateway); this service trusts the
    header and only requires it to be present.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return x_account_id.strip()
