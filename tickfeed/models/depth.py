"""Order book depth data models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class OrderBookEntry(BaseModel):
    """A single price level. Zero quantity removes the level."""

    price: float = Field(..., ge=0, description="Level price")
    quantity: float = Field(..., ge=0, description="Resting quantity")

    model_config = {"frozen": True}


class DepthSnapshot(BaseModel):
    """Point-in-time view of the order book (or a diff of it)."""

    bids: list[OrderBookEntry] = Field(default_factory=list, description="Bids, best first")
    asks: list[OrderBookEntry] = Field(default_factory=list, description="Asks, best first")
    event_time: Optional[datetime] = Field(default=None, description="Exchange event time")
    first_update_id: Optional[int] = Field(default=None, description="First update ID in event")
    last_update_id: Optional[int] = Field(default=None, description="Last update ID in event")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_order(self) -> "DepthSnapshot":
        bid_prices = [b.price for b in self.bids]
        ask_prices = [a.price for a in self.asks]
        if bid_prices != sorted(bid_prices, reverse=True):
            raise ValueError("bids must be sorted by descending price")
        if ask_prices != sorted(ask_prices):
            raise ValueError("asks must be sorted by ascending price")
        return self

    @property
    def best_bid(self) -> Optional[OrderBookEntry]:
        return next((b for b in self.bids if b.quantity > 0), None)

    @property
    def best_ask(self) -> Optional[OrderBookEntry]:
        return next((a for a in self.asks if a.quantity > 0), None)
