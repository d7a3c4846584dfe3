"""Candle (kline) data model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Candle(BaseModel):
    """Represents a single completed or in-progress kline."""

    open_time: datetime = Field(..., description="Bar open time (UTC)")
    close_time: datetime = Field(..., description="Bar close time (UTC)")
    open: float = Field(..., ge=0, description="Opening price")
    high: float = Field(..., ge=0, description="High price")
    low: float = Field(..., ge=0, description="Low price")
    close: float = Field(..., ge=0, description="Closing price")
    volume: float = Field(..., ge=0, description="Base asset volume")
    quote_asset_volume: float = Field(..., ge=0, description="Quote asset volume")
    taker_buy_base_volume: float = Field(..., ge=0, description="Taker buy base volume")
    taker_buy_quote_volume: float = Field(..., ge=0, description="Taker buy quote volume")
    sma10: Optional[float] = Field(default=None, description="10-period SMA of close")
    sma30: Optional[float] = Field(default=None, description="30-period SMA of close")
    rsi14: Optional[float] = Field(default=None, description="14-period RSI of close")
    returns: Optional[float] = Field(default=None, description="Percent return vs previous bar")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_bar(self) -> "Candle":
        if not self.low <= self.open <= self.high:
            raise ValueError(f"open {self.open} outside [{self.low}, {self.high}]")
        if not self.low <= self.close <= self.high:
            raise ValueError(f"close {self.close} outside [{self.low}, {self.high}]")
        if self.open_time >= self.close_time:
            raise ValueError("open_time must be before close_time")
        return self
