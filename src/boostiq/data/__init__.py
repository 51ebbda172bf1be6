"""Market data module."""

from .connector import (
    MarketDataSource,
    CCXTMarketSource,
    BinanceRestSource,
    create_source,
    klines_to_frame,
)

__all__ = [
    "MarketDataSource",
    "CCXTMarketSource",
    "BinanceRestSource",
    "create_source",
    "klines_to_frame",
]
