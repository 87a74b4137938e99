"""
Pytest configuration and shared fixtures.

Provides an in-memory ledger store, a static price oracle, a position
engine wired to both, and an HTTP client over the FastAPI app.
"""

import os

# Tests never touch MongoDB, Binance or the log file
os.environ.setdefault("LEDGER_BACKEND", "memory")
os.environ.setdefault("LOG_FILE_PATH", "")
os.environ.setdefault("SCANNER_ENABLED", "false")

from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

from app.config.settings import get_settings
from app.core.runtime import EngineRuntime
from app.domain.models.account import Account
from app.domain.services.position_engine import PositionEngine
from app.infrastructure.db.memory_store import InMemoryLedgerStore
from app.infrastructure.market_data.price_oracle import StaticPriceOracle


@pytest.fixture
def store() -> InMemoryLedgerStore:
    """Fresh in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def oracle() -> StaticPriceOracle:
    """Static oracle priced at BTC/USDT 50000 and ETH/USDT 3000."""
    return StaticPriceOracle({
        "BTC/USDT": Decimal("50000"),
        "ETH/USDT": Decimal("3000"),
    })


@pytest.fixture
def engine(store, oracle) -> PositionEngine:
    """Position engine over the in-memory store and static oracle."""
    return PositionEngine(store, oracle, price_timeout_seconds=1.0, commit_timeout_seconds=1.0)


@pytest.fixture
async def account(store) -> Account:
    """Account funded with 10000."""
    return await store.create_account(balance=Decimal("10000"))


@pytest.fixture
def runtime(store, oracle) -> EngineRuntime:
    """Runtime sharing the test store and oracle."""
    return EngineRuntime(get_settings(), store, oracle)


@pytest.fixture
async def client(runtime) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client over the app, with the test runtime installed.

    The lifespan is not run, so no scanner loop or Binance session starts.
    """
    from app.main import app

    app.state.runtime = runtime
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.runtime = None
