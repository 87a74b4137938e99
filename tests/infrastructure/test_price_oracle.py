"""
Tests for price oracles: static, cached and Binance (mocked HTTP session).
"""

import asyncio
from decimal import Decimal

import aiohttp
import pytest

from app.infrastructure.market_data.price_oracle import (
    BinancePriceOracle,
    CachedPriceOracle,
    StaticPriceOracle,
)
from app.shared.exceptions import PriceUnavailableError


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload

    async def json(self):
        return self.payload

    async def text(self):
        return str(self.payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.closed = False
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


class CountingOracle(StaticPriceOracle):
    def __init__(self, prices):
        super().__init__(prices)
        self.calls = 0

    async def get_price(self, symbol):
        self.calls += 1
        return await super().get_price(symbol)


# ==================== STATIC ====================

async def test_static_oracle_is_case_insensitive():
    oracle = StaticPriceOracle({"btc/usdt": "50000.5"})
    assert await oracle.get_price("BTC/USDT") == Decimal("50000.5")


async def test_static_oracle_missing_symbol():
    oracle = StaticPriceOracle()
    with pytest.raises(PriceUnavailableError) as exc_info:
        await oracle.get_price("BTC/USDT")
    assert exc_info.value.symbol == "BTC/USDT"


@pytest.mark.parametrize("price", ["0", "-1", "NaN", "abc"])
def test_static_oracle_rejects_invalid_prices(price):
    with pytest.raises(PriceUnavailableError):
        StaticPriceOracle({"BTC/USDT": price})


# ==================== CACHED ====================

async def test_cached_oracle_serves_within_ttl():
    now = [100.0]
    inner = CountingOracle({"BTC/USDT": Decimal("50000")})
    oracle = CachedPriceOracle(inner, ttl_seconds=2, clock=lambda: now[0])

    await oracle.get_price("BTC/USDT")
    inner.set_price("BTC/USDT", Decimal("51000"))
    now[0] = 101.5
    assert await oracle.get_price("BTC/USDT") == Decimal("50000")
    assert inner.calls == 1

    now[0] = 102.5
    assert await oracle.get_price("BTC/USDT") == Decimal("51000")
    assert inner.calls == 2


async def test_cached_oracle_does_not_cache_failures():
    inner = CountingOracle({})
    oracle = CachedPriceOracle(inner, ttl_seconds=60)

    with pytest.raises(PriceUnavailableError):
        await oracle.get_price("BTC/USDT")
    inner.set_price("BTC/USDT", Decimal("1"))
    assert await oracle.get_price("BTC/USDT") == Decimal("1")


async def test_cached_oracle_invalidate():
    inner = CountingOracle({"BTC/USDT": Decimal("1")})
    oracle = CachedPriceOracle(inner, ttl_seconds=60)
    await oracle.get_price("BTC/USDT")

    oracle.invalidate("btc/usdt")
    await oracle.get_price("BTC/USDT")

    assert inner.calls == 2


# ==================== BINANCE ====================

def test_binance_symbol_conversion():
    assert BinancePriceOracle.to_binance_symbol("btc/usdt") == "BTCUSDT"


async def test_binance_parses_decimal_string():
    oracle = BinancePriceOracle(base_url="https://example.test/api/v3/")
    session = FakeSession(FakeResponse(payload={"symbol": "BTCUSDT", "price": "50123.45000000"}))
    oracle.session = session

    price = await oracle.get_price("BTC/USDT")

    assert price == Decimal("50123.45")
    assert session.calls == [("https://example.test/api/v3/ticker/price", {"symbol": "BTCUSDT"})]


async def test_binance_non_200_is_unavailable():
    oracle = BinancePriceOracle()
    oracle.session = FakeSession(FakeResponse(status=400, payload={"code": -1121, "msg": "Invalid symbol."}))

    with pytest.raises(PriceUnavailableError):
        await oracle.get_price("NOPE/USDT")


@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
async def test_binance_transport_errors_are_unavailable(error):
    oracle = BinancePriceOracle()
    oracle.session = FakeSession(error=error)

    with pytest.raises(PriceUnavailableError):
        await oracle.get_price("BTC/USDT")


async def test_binance_malformed_payload_is_unavailable():
    oracle = BinancePriceOracle()
    oracle.session = FakeSession(FakeResponse(payload={"price": "0"}))

    with pytest.raises(PriceUnavailableError):
        await oracle.get_price("BTC/USDT")


async def test_binance_close_closes_session():
    session = FakeSession()
    async with BinancePriceOracle() as oracle:
        oracle.session = session
    assert session.closed
