"""
Tests for the Celery position tasks, run eagerly against a memory runtime.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.config.settings import get_settings
from app.core.runtime import EngineRuntime
from app.infrastructure.db.memory_store import InMemoryLedgerStore
from app.infrastructure.market_data.price_oracle import StaticPriceOracle
from app.tasks import position_tasks


@pytest.fixture
def task_runtime(monkeypatch):
    """Each task run builds this runtime instead of connecting to MongoDB."""
    store = InMemoryLedgerStore()
    oracle = StaticPriceOracle({"BTC/USDT": Decimal("50000")})
    runtime = EngineRuntime(get_settings(), store, oracle)
    monkeypatch.setattr(position_tasks, "build_runtime", AsyncMock(return_value=runtime))
    return runtime


def test_scan_task_reports_closed_positions(task_runtime):
    async def seed():
        account = await task_runtime.store.create_account(balance=Decimal("1000"))
        await task_runtime.engine.open_position(
            account.id, "BTC/USDT", "long", Decimal("1000"), Decimal("10")
        )

    asyncio.run(seed())
    task_runtime.oracle.set_price("BTC/USDT", Decimal("40000"))

    result = position_tasks.scan_open_positions_task.apply().get()

    assert result["success"] is True
    assert result["open_positions"] == 1
    assert result["scans"]["BTC/USDT"]["closed"] == 1


def test_recovery_task_with_nothing_stuck(task_runtime):
    result = position_tasks.recover_stuck_closes_task.apply(kwargs={"min_age_seconds": 0}).get()

    assert result["success"] is True
    assert result["examined"] == 0


def test_scan_task_reports_failure(monkeypatch):
    monkeypatch.setattr(
        position_tasks, "build_runtime", AsyncMock(side_effect=ConnectionError("mongo down"))
    )

    result = position_tasks.scan_open_positions_task.apply().get()

    assert result["success"] is False
    assert "mongo down" in result["error"]
