"""
Tests for the position scanner tick and background loop.
"""

import asyncio
from decimal import Decimal

import pytest

from app.domain.models.position import PositionStatus, ExitReason
from app.domain.services.position_engine import PositionEngine
from app.infrastructure.market_data.price_oracle import StaticPriceOracle
from app.services.position_scanner import ScannerScheduler
from app.shared.exceptions import PriceUnavailableError


class SlowOracle:
    """Never answers within the scanner's timeout."""

    async def get_price(self, symbol):
        await asyncio.sleep(10)

    async def close(self):
        return None


class CountingOracle(StaticPriceOracle):
    """Static oracle that records every symbol it is asked for."""

    def __init__(self, prices):
        super().__init__(prices)
        self.calls = []

    async def get_price(self, symbol):
        self.calls.append(symbol)
        return await super().get_price(symbol)


def make_scanner(engine, store, **kwargs) -> ScannerScheduler:
    params = dict(interval_seconds=0.01, recovery_interval_seconds=None)
    params.update(kwargs)
    return ScannerScheduler(engine, store, **params)


async def open_position(engine, account, symbol="BTC/USDT", **kwargs):
    return await engine.open_position(
        account.id, symbol, kwargs.pop("side", "long"), Decimal("1000"), Decimal("10"), **kwargs
    )


async def test_tick_closes_triggered_positions(engine, store, oracle, account):
    btc = await open_position(engine, account)
    eth = await open_position(engine, account, symbol="ETH/USDT", take_profit=Decimal("3100"))
    oracle.set_price("BTC/USDT", Decimal("44000"))
    oracle.set_price("ETH/USDT", Decimal("3100"))

    report = await make_scanner(engine, store).run_once()

    assert report.open_positions == 2
    assert report.symbols == 2
    assert report.closed == 2
    assert report.skipped_symbols == []
    assert (await store.get_position(btc.id)).close_reason == ExitReason.LIQUIDATION
    assert (await store.get_position(eth.id)).close_reason == ExitReason.TAKE_PROFIT


async def test_tick_skips_symbols_without_price(engine, store, oracle, account):
    btc = await open_position(engine, account)
    eth = await open_position(engine, account, symbol="ETH/USDT")
    oracle.remove_price("BTC/USDT")
    oracle.set_price("ETH/USDT", Decimal("2000"))

    report = await make_scanner(engine, store).run_once()

    assert report.skipped_symbols == ["BTC/USDT"]
    assert report.scans["ETH/USDT"].closed == 1
    assert (await store.get_position(btc.id)).status == PositionStatus.OPEN
    assert (await store.get_position(eth.id)).status == PositionStatus.CLOSED


async def test_tick_skips_symbols_on_price_timeout(engine, store, account):
    await open_position(engine, account)
    slow_engine = PositionEngine(store, SlowOracle(), price_timeout_seconds=0.01)
    scanner = make_scanner(slow_engine, store)

    report = await scanner.run_once()

    assert report.skipped_symbols == ["BTC/USDT"]
    assert report.closed == 0


async def test_tick_fetches_one_price_per_symbol(store, account):
    oracle = CountingOracle({"BTC/USDT": Decimal("50000"), "ETH/USDT": Decimal("3000")})
    counting_engine = PositionEngine(store, oracle, price_timeout_seconds=1.0)
    for _ in range(3):
        await open_position(counting_engine, account)
    await open_position(counting_engine, account, symbol="ETH/USDT")
    oracle.calls.clear()

    report = await make_scanner(counting_engine, store).run_once()

    assert report.open_positions == 4
    assert report.symbols == 2
    assert sorted(oracle.calls) == ["BTC/USDT", "ETH/USDT"]
    assert report.scans["BTC/USDT"].evaluated == 3
    assert report.scans["ETH/USDT"].evaluated == 1


async def test_tick_without_positions(engine, store, oracle):
    report = await make_scanner(engine, store).run_once()
    assert report.open_positions == 0
    assert report.scans == {}


async def test_recovery_runs_when_due(engine, store, oracle):
    scanner = make_scanner(engine, store, recovery_interval_seconds=3600)

    first = await scanner.run_once()
    second = await scanner.run_once()
    forced = await scanner.run_once(run_recovery=True)

    assert first.recovery is not None
    assert second.recovery is None
    assert forced.recovery is not None


async def test_fetch_price_timeout_raises_unavailable(store):
    slow_engine = PositionEngine(store, SlowOracle(), price_timeout_seconds=0.01)
    with pytest.raises(PriceUnavailableError) as exc_info:
        await slow_engine.fetch_price("BTC/USDT")
    assert exc_info.value.symbol == "BTC/USDT"


async def test_background_loop_start_stop(engine, store, oracle, account):
    position = await open_position(engine, account)
    oracle.set_price("BTC/USDT", Decimal("40000"))
    scanner = make_scanner(engine, store)

    await scanner.start()
    assert scanner.is_running()
    for _ in range(100):
        if (await store.get_position(position.id)).is_closed():
            break
        await asyncio.sleep(0.01)
    await scanner.stop()

    assert not scanner.is_running()
    assert (await store.get_position(position.id)).status == PositionStatus.CLOSED
    assert scanner.last_report is not None
