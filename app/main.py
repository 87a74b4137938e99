"""
FastAPI main application.

Entry point for the margin position engine backend.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.config import settings
from app.core.responses import error_response
from app.core.runtime import build_runtime
from app.modules.accounts.router import router as accounts_router
from app.modules.positions.router import router as positions_router
from app.shared.exceptions import AppException
from app.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events. A runtime already placed on
    `app.state` (tests) is used as-is and not closed here.
    """
    # Startup
    logger.info("Starting application...")

    owns_runtime = getattr(app.state, "runtime", None) is None
    try:
        if owns_runtime:
            app.state.runtime = await build_runtime(settings)

        if owns_runtime and settings.SCANNER_ENABLED:
            await app.state.runtime.scanner.start()

        logger.info("Application started successfully")
    except Exception as e:
        logger.error(f"Failed to start application: {str(e)}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down application...")

    try:
        if owns_runtime:
            await app.state.runtime.close()
            app.state.runtime = None

        logger.info("Application shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}")


API_DESCRIPTION = """
## Margin Position Engine API

Opens leveraged long/short positions against an account balance, closes
them manually or automatically (liquidation, take-profit, stop-loss), and
settles each close exactly once.

### Identity

Every request carries the calling account in the `X-Account-Id` header.

### Money

All amounts are decimal strings. A short opened at leverage 1 has
`liquidation_price` "Infinity".

### Error Response

```json
{
  "status_code": 400,
  "message": "Operation failed",
  "data": null,
  "error": {
    "code": "INSUFFICIENT_FUNDS",
    "message": "Detailed error message"
  }
}
```
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Map domain errors to the standard error response."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            status_code=exc.status_code,
            message="Operation failed",
            error_code=exc.code,
            error_message=exc.message
        )
    )


# Include routers
app.include_router(positions_router, prefix="/api/v1")
app.include_router(accounts_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    runtime = getattr(request.app.state, "runtime", None)
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "scanner_running": bool(runtime and runtime.scanner.is_running()),
    }
