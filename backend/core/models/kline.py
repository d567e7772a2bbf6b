"""K-line (candlestick) data models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field

# Exchange caps a single kline request at this many bars for our window
MAX_CANDLES = 240


class Candle(BaseModel):
    """Single OHLCV bar."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime | None = None
    open: float
    high: float
    low: float
    close: float
    volume: float


class CandleSeries(BaseModel):
    """Oldest-first window of candles for one (symbol, interval).

    Replaced wholesale on each fetch, never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    interval: str
    candles: tuple[Candle, ...] = Field(default=(), max_length=MAX_CANDLES)

    @classmethod
    def from_newest_first(
        cls,
        symbol: str,
        interval: str,
        rows: Sequence[Sequence[Any]],
    ) -> "CandleSeries":
        """Build a series from exchange rows ordered newest-first.

        Each row is ``[startTime, open, high, low, close, volume, ...]``
        with string-encoded decimals.
        """
        candles = [
            Candle(
                start_time=datetime.fromtimestamp(int(row[0]) / 1000, tz=timezone.utc),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in reversed(rows)
        ]
        return cls(symbol=symbol, interval=interval, candles=tuple(candles[-MAX_CANDLES:]))

    @classmethod
    def from_arrays(
        cls,
        symbol: str,
        interval: str,
        opens: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        volumes: Sequence[float],
    ) -> "CandleSeries":
        """Build a series from parallel oldest-first arrays."""
        candles = tuple(
            Candle(open=o, high=h, low=l, close=c, volume=v)
            for o, h, l, c, v in zip(opens, highs, lows, closes, volumes)
        )
        return cls(symbol=symbol, interval=interval, candles=candles)

    def get_highs(self) -> list[float]:
        """Get list of high prices."""
        return [c.high for c in self.candles]

    def get_lows(self) -> list[float]:
        """Get list of low prices."""
        return [c.low for c in self.candles]

    def get_closes(self) -> list[float]:
        """Get list of close prices."""
        return [c.close for c in self.candles]

    def get_volumes(self) -> list[float]:
        """Get list of volumes."""
        return [c.volume for c in self.candles]

    def __len__(self) -> int:
        return len(self.candles)
