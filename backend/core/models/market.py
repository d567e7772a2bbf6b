"""Live market data models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PriceTick(BaseModel):
    """Latest accepted ticker price for a symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    timestamp: datetime


class InstrumentInfo(BaseModel):
    """Price and quantity precision for an instrument."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    tick_size: float
    lot_size: float


class MarketMetrics(BaseModel):
    """Auxiliary derivatives metrics. Each field is None when its fetch failed."""

    model_config = ConfigDict(frozen=True)

    funding_rate: float | None = None
    taker_ratio: float | None = None  # buy size / sell size over recent trades
    oi_delta: float | None = None  # relative open-interest change, newest vs previous
