"""
Application settings using Pydantic Settings.

Loads configuration from environment variables with validation.
"""

from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are loaded from .env file or environment variables.
    Uses Pydantic for validation and type checking.
    """

    # App Configuration
    APP_NAME: str = Field(default="Margin Engine")
    APP_VERSION: str = Field(default="1.0.0")
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # Server
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Ledger Store ("mongo" or "memory")
    LEDGER_BACKEND: str = Field(default="memory")

    # Database
    MONGODB_URL: str = Field(default="mongodb://localhost:27017", description="MongoDB connection string")
    MONGODB_DB_NAME: str = Field(default="margin_engine", description="MongoDB database name")

    # Redis (Celery broker and result backend)
    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis connection string")

    # Price Oracle
    BINANCE_API_URL: str = Field(default="https://api.binance.com/api/v3")
    PRICE_FETCH_TIMEOUT_SECONDS: float = Field(default=5.0)
    PRICE_CACHE_TTL_SECONDS: float = Field(default=2.0)

    # Settlement
    DB_TRANSACTION_TIMEOUT_SECONDS: float = Field(default=10.0)
    MONEY_DECIMAL_PLACES: int = Field(default=8)

    # Scanner Scheduler
    SCANNER_ENABLED: bool = Field(default=True)
    SCANNER_INTERVAL_SECONDS: float = Field(default=10.0)
    RECOVERY_INTERVAL_SECONDS: float = Field(default=60.0)
    RECOVERY_MIN_AGE_SECONDS: float = Field(default=30.0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE_PATH: str = Field(default="logs/app.log")

    # CORS
    CORS_ORIGINS: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        elif isinstance(v, list):
            return v
        return []

    @field_validator("LEDGER_BACKEND")
    @classmethod
    def validate_ledger_backend(cls, v: str) -> str:
        """Validate ledger backend is a known store."""
        v = v.lower()
        if v not in ("mongo", "memory"):
            raise ValueError("LEDGER_BACKEND must be 'mongo' or 'memory'")
        return v

    @field_validator(
        "PRICE_FETCH_TIMEOUT_SECONDS",
        "DB_TRANSACTION_TIMEOUT_SECONDS",
        "SCANNER_INTERVAL_SECONDS",
        "RECOVERY_INTERVAL_SECONDS",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate timeouts and intervals are positive."""
        if v <= 0:
            raise ValueError("Timeouts and intervals must be positive")
        return v

    @field_validator("PRICE_CACHE_TTL_SECONDS", "RECOVERY_MIN_AGE_SECONDS")
    @classmethod
    def validate_non_negative_seconds(cls, v: float) -> float:
        """Validate ages and TTLs are not negative."""
        if v < 0:
            raise ValueError("Ages and TTLs must not be negative")
        return v

    @field_validator("MONEY_DECIMAL_PLACES")
    @classmethod
    def validate_money_places(cls, v: int) -> int:
        """Validate money precision leaves room for integer digits within Decimal128's 34."""
        if v < 0 or v > 18:
            raise ValueError("MONEY_DECIMAL_PLACES must be between 0 and 18")
        return v

    @property
    def celery_broker(self) -> str:
        """Celery broker URL."""
        return self.REDIS_URL

    @property
    def celery_backend(self) -> str:
        """Celery result backend URL."""
        return self.REDIS_URL

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }


# Global settings instance
def get_settings() -> Settings:
    """Get settings instance (lazy loading)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

_settings: Settings | None = None

settings = get_settings()
