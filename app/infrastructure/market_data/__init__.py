"""
Market Data Infrastructure

Price oracles used by the position engine and scanner.
"""

from app.infrastructure.market_data.price_oracle import (
    PriceOracle,
    BinancePriceOracle,
    StaticPriceOracle,
    CachedPriceOracle,
)

__all__ = [
    "PriceOracle",
    "BinancePriceOracle",
    "StaticPriceOracle",
    "CachedPriceOracle",
]
