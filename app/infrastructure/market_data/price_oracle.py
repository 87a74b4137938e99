"""
Price Oracle

Pull-based price interface used by the position engine and the scanner.
Implementations are replaceable; none of them is trusted to cache.

Author: Margin Engine Team
"""

import asyncio
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from app.shared.exceptions import PriceUnavailableError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class PriceOracle(ABC):
    """
    Abstract base class for price oracles.

    Implementations: BinancePriceOracle, StaticPriceOracle, CachedPriceOracle.

    Usage:
        oracle = BinancePriceOracle()
        price = await oracle.get_price("BTC/USDT")
    """

    @abstractmethod
    async def get_price(self, symbol: str) -> Decimal:
        """
        Get the current price for a symbol.

        Raises:
            PriceUnavailableError: If no valid price can be returned
        """

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""
        return None


def _parse_price(symbol: str, raw) -> Decimal:
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        raise PriceUnavailableError(f"Invalid price for {symbol}: {raw!r}", symbol=symbol)
    if not price.is_finite() or price <= 0:
        raise PriceUnavailableError(f"Invalid price for {symbol}: {raw!r}", symbol=symbol)
    return price


class BinancePriceOracle(PriceOracle):
    """
    Binance public ticker price oracle.

    FREE - No API key required!

    Usage:
        async with BinancePriceOracle() as oracle:
            price = await oracle.get_price("BTC/USDT")
    """

    BASE_URL = "https://api.binance.com/api/v3"

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: float = 5.0):
        """
        Initialize oracle.

        Args:
            base_url: REST base URL (defaults to Binance spot API)
            timeout_seconds: Total timeout of one price request
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self.session

    async def close(self):
        """Close HTTP session"""
        if self.session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @staticmethod
    def to_binance_symbol(symbol: str) -> str:
        """Convert symbol format: BTC/USDT -> BTCUSDT"""
        return symbol.replace("/", "").upper()

    async def get_price(self, symbol: str) -> Decimal:
        """
        Get latest traded price from /ticker/price.

        Args:
            symbol: Symbol like "BTC/USDT" or "BTCUSDT"

        Returns:
            Price as Decimal (parsed from the API's string, never via float)
        """
        binance_symbol = self.to_binance_symbol(symbol)
        session = await self._get_session()
        url = f"{self.base_url}/ticker/price"

        try:
            async with session.get(url, params={"symbol": binance_symbol}) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.warning(f"Binance API error for {symbol}: {response.status} - {error_text}")
                    raise PriceUnavailableError(
                        f"Price source returned {response.status} for {symbol}",
                        symbol=symbol
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Binance price fetch error for {symbol}: {str(e)}")
            raise PriceUnavailableError(f"Price fetch failed for {symbol}", symbol=symbol) from e

        return _parse_price(symbol, data.get("price") if isinstance(data, dict) else None)


class StaticPriceOracle(PriceOracle):
    """
    In-process price oracle with explicitly set prices.

    Used in demo mode and tests. Symbols without a price raise
    PriceUnavailableError.

    Usage:
        oracle = StaticPriceOracle({"BTC/USDT": Decimal("50000")})
        oracle.set_price("BTC/USDT", Decimal("45000"))
    """

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {}
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        self._prices[symbol.upper()] = _parse_price(symbol, price)

    def remove_price(self, symbol: str) -> None:
        self._prices.pop(symbol.upper(), None)

    async def get_price(self, symbol: str) -> Decimal:
        price = self._prices.get(symbol.upper())
        if price is None:
            raise PriceUnavailableError(f"No price for {symbol}", symbol=symbol)
        return price


class CachedPriceOracle(PriceOracle):
    """
    TTL cache in front of another oracle.

    A cached price is served for at most `ttl_seconds` after it was
    fetched. Failures are never cached.
    """

    def __init__(
        self,
        inner: PriceOracle,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[Decimal, float]] = {}

    async def get_price(self, symbol: str) -> Decimal:
        key = symbol.upper()
        cached = self._cache.get(key)
        now = self._clock()
        if cached is not None and now - cached[1] <= self.ttl_seconds:
            return cached[0]

        price = await self.inner.get_price(symbol)
        self._cache[key] = (price, self._clock())
        return price

    def invalidate(self, symbol: Optional[str] = None) -> None:
        """Drop one cached symbol, or everything."""
        if symbol is None:
            self._cache.clear()
        else:
            self._cache.pop(symbol.upper(), None)

    async def close(self) -> None:
        await self.inner.close()
