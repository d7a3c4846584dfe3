"""Aggregated trade data model."""

from datetime import datetime

from pydantic import BaseModel, Field


class Trade(BaseModel):
    """Represents one aggregated trade from the exchange."""

    id: int = Field(..., ge=0, description="Aggregate trade ID")
    price: float = Field(..., gt=0, description="Trade price")
    quantity: float = Field(..., gt=0, description="Trade quantity")
    buyer_is_maker: bool = Field(..., description="Buyer was the maker")
    time: datetime = Field(..., description="Exchange trade time (UTC)")
    is_best_price_match: bool = Field(default=True, description="Trade was the best price match")

    model_config = {"frozen": True}
