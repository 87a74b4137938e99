"""
Engine Runtime

Builds and owns the long-lived components (ledger store, price oracle,
position engine, scanner) from settings. Used by the API lifespan and
by Celery tasks.

Usage:
    runtime = await build_runtime()
    position = await runtime.engine.open_position(...)
    await runtime.close()
"""

from typing import Optional

from app.config.database import connect_to_mongodb, close_mongodb_connection, get_client
from app.config.settings import Settings, get_settings
from app.domain.services.position_engine import PositionEngine
from app.infrastructure.db.ledger_store import LedgerStore
from app.infrastructure.db.memory_store import InMemoryLedgerStore
from app.infrastructure.db.mongo_store import MongoLedgerStore
from app.infrastructure.market_data.price_oracle import (
    PriceOracle,
    BinancePriceOracle,
    CachedPriceOracle,
)
from app.services.position_scanner import ScannerScheduler
from app.utils.logger import get_logger

logger = get_logger(__name__)


class EngineRuntime:
    """Wired components sharing one store and one oracle."""

    def __init__(
        self,
        settings: Settings,
        store: LedgerStore,
        oracle: PriceOracle,
        owns_mongo_connection: bool = False
    ):
        self.settings = settings
        self.store = store
        self.oracle = oracle
        self.engine = PositionEngine(
            store=store,
            oracle=oracle,
            price_timeout_seconds=settings.PRICE_FETCH_TIMEOUT_SECONDS,
            commit_timeout_seconds=settings.DB_TRANSACTION_TIMEOUT_SECONDS,
            money_places=settings.MONEY_DECIMAL_PLACES,
        )
        self.scanner = ScannerScheduler(
            engine=self.engine,
            store=store,
            interval_seconds=settings.SCANNER_INTERVAL_SECONDS,
            recovery_interval_seconds=settings.RECOVERY_INTERVAL_SECONDS,
            recovery_min_age_seconds=settings.RECOVERY_MIN_AGE_SECONDS,
        )
        self._owns_mongo_connection = owns_mongo_connection

    async def close(self) -> None:
        """Stop the scanner and release store / oracle resources."""
        await self.scanner.stop()
        await self.oracle.close()
        await self.store.close()
        if self._owns_mongo_connection:
            await close_mongodb_connection()


async def create_store(settings: Settings) -> LedgerStore:
    """Create the ledger store selected by LEDGER_BACKEND."""
    if settings.LEDGER_BACKEND == "mongo":
        db = await connect_to_mongodb()
        store = MongoLedgerStore(get_client(), db)
    else:
        logger.warning("Using in-memory ledger store; balances are lost on restart")
        store = InMemoryLedgerStore()

    await store.initialize()
    return store


def create_oracle(settings: Settings) -> PriceOracle:
    """Binance oracle, behind a short TTL cache when PRICE_CACHE_TTL_SECONDS > 0."""
    oracle: PriceOracle = BinancePriceOracle(
        base_url=settings.BINANCE_API_URL,
        timeout_seconds=settings.PRICE_FETCH_TIMEOUT_SECONDS,
    )
    if settings.PRICE_CACHE_TTL_SECONDS > 0:
        oracle = CachedPriceOracle(oracle, ttl_seconds=settings.PRICE_CACHE_TTL_SECONDS)
    return oracle


async def build_runtime(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStore] = None,
    oracle: Optional[PriceOracle] = None
) -> EngineRuntime:
    """
    Build a runtime from settings.

    Args:
        settings: Settings (defaults to get_settings())
        store: Pre-built store (skips backend selection)
        oracle: Pre-built oracle (skips Binance setup)

    Returns:
        EngineRuntime
    """
    settings = settings or get_settings()
    owns_mongo = store is None and settings.LEDGER_BACKEND == "mongo"

    if store is None:
        store = await create_store(settings)
    if oracle is None:
        oracle = create_oracle(settings)

    logger.info(
        f"Engine runtime ready (ledger={type(store).__name__}, oracle={type(oracle).__name__})"
    )
    return EngineRuntime(settings, store, oracle, owns_mongo_connection=owns_mongo)
