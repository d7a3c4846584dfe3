"""Data models for tickfeed."""

from tickfeed.models.candle import Candle
from tickfeed.models.depth import DepthSnapshot, OrderBookEntry
from tickfeed.models.snapshot import SymbolSnapshot
from tickfeed.models.trade import Trade

__all__ = [
    "Candle",
    "DepthSnapshot",
    "OrderBookEntry",
    "SymbolSnapshot",
    "Trade",
]
