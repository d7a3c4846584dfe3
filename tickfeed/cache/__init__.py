"""Cache adapter module."""

from tickfeed.cache.store import (
    DEPTH,
    KLINES,
    SEED_KLINE_TTL,
    TRADES,
    MarketCache,
    WindowSpec,
    window_key,
)

__all__ = [
    "DEPTH",
    "KLINES",
    "SEED_KLINE_TTL",
    "TRADES",
    "MarketCache",
    "WindowSpec",
    "window_key",
]
