"""Per-symbol snapshot handed to consumers."""

from typing import Optional

from pydantic import BaseModel, Field

from tickfeed.models.candle import Candle
from tickfeed.models.depth import DepthSnapshot
from tickfeed.models.trade import Trade


class SymbolSnapshot(BaseModel):
    """Cached market state for one symbol, with derived indicators."""

    symbol: str = Field(..., min_length=1, description="Trading pair, e.g. BTCUSDT")
    candles: list[Candle] = Field(default_factory=list, description="Kline window, oldest first")
    trades: list[Trade] = Field(default_factory=list, description="Trade window, oldest first")
    depth: Optional[DepthSnapshot] = Field(default=None, description="Most recent depth snapshot")
    indicators: dict[str, Optional[float]] = Field(
        default_factory=dict, description="Latest value of each indicator output"
    )

    model_config = {"frozen": True}

    @property
    def last_close(self) -> Optional[float]:
        return self.candles[-1].close if self.candles else None
