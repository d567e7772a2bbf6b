"""Technical indicators for signal generation.

All functions take oldest-first numeric sequences and return plain lists
aligned index-for-index with the input. Decision thresholds were tuned
against these exact definitions (EMA seeded with the first value, ATR with
a growing-window warm-up), so they intentionally differ from TA-Lib.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from core.errors import InsufficientDataError
from core.models.kline import CandleSeries

# Guards RSI against division by zero when there are no losses
RSI_EPSILON = 1e-9

# Minimum bars before the decision rules are evaluated
MIN_BARS = 50


def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average.

    Seeded with the first raw value rather than an SMA of the first
    ``period`` values, so every index carries a value.

    Args:
        values: Sequence of price values
        period: EMA period

    Returns:
        List of EMA values (same length as input, empty for empty input)
    """
    if len(values) == 0:
        return []

    arr = np.asarray(values, dtype=np.float64)
    k = 2.0 / (period + 1)

    result = np.empty_like(arr)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = arr[i] * k + result[i - 1] * (1 - k)

    return result.tolist()


def rsi(values: Sequence[float], period: int = 14) -> list[float | None]:
    """
    Calculate Relative Strength Index with Wilder smoothing.

    Indices below ``period`` are None. The first value at ``period`` uses
    simple averages of gains/losses over indices 1..period.

    Args:
        values: Sequence of close prices
        period: RSI period

    Returns:
        List of RSI values in [0, 100] or None
    """
    n = len(values)
    if n < period + 1:
        return [None] * n

    diffs = np.diff(np.asarray(values, dtype=np.float64))
    gains = np.where(diffs > 0, diffs, 0.0)
    losses = np.where(diffs < 0, -diffs, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    result: list[float | None] = [None] * n
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        result[i] = _rsi_value(avg_gain, avg_loss)

    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    return 100.0 - 100.0 / (1.0 + avg_gain / max(avg_loss, RSI_EPSILON))


def true_range_at(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    i: int,
) -> float:
    """
    True Range of bar ``i``.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close)),
    and simply high - low for the first bar.
    """
    if i == 0:
        return highs[0] - lows[0]
    return max(
        highs[i] - lows[i],
        abs(highs[i] - closes[i - 1]),
        abs(lows[i] - closes[i - 1]),
    )


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> list[float]:
    """Calculate True Range for every bar."""
    return [true_range_at(highs, lows, closes, i) for i in range(len(highs))]


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> list[float]:
    """
    Calculate Average True Range (ATR).

    Indices below ``period`` hold the mean of all true ranges so far
    (growing window); from ``period`` on, Wilder smoothing is applied.

    Args:
        highs: Sequence of high prices
        lows: Sequence of low prices
        closes: Sequence of close prices
        period: ATR period

    Returns:
        List of ATR values, empty when inputs are empty or of unequal length
    """
    if len(highs) == 0 or len(highs) != len(lows) or len(lows) != len(closes):
        return []

    tr = np.asarray(true_range(highs, lows, closes), dtype=np.float64)
    result = np.empty_like(tr)

    warmup = min(period, len(tr))
    result[:warmup] = np.cumsum(tr[:warmup]) / np.arange(1, warmup + 1)

    for i in range(period, len(tr)):
        result[i] = (result[i - 1] * (period - 1) + tr[i]) / period

    return result.tolist()


def highest(values: Sequence[float], lookback: int) -> float:
    """Highest value over the trailing ``lookback`` entries."""
    return float(np.max(np.asarray(values[-lookback:], dtype=np.float64)))


def lowest(values: Sequence[float], lookback: int) -> float:
    """Lowest value over the trailing ``lookback`` entries."""
    return float(np.min(np.asarray(values[-lookback:], dtype=np.float64)))


# =============================================================================
# IndicatorSet
# =============================================================================

@dataclass(frozen=True)
class IndicatorSet:
    """Indicators derived from one CandleSeries, aligned with its bars."""

    closes: list[float]
    highs: list[float]
    lows: list[float]
    volumes: list[float]
    ema9: list[float]
    ema21: list[float]
    rsi14: list[float | None]
    atr14: list[float]

    @property
    def last(self) -> int:
        return len(self.closes) - 1

    @property
    def atr_pct(self) -> float:
        """Latest ATR as a fraction of the latest close."""
        close = self.closes[self.last]
        if close <= 0:
            return 0.0
        return self.atr14[self.last] / close

    @property
    def vol_boost(self) -> float:
        """Mean of the last 3 volumes over the mean of the 17 before them."""
        recent = float(np.mean(self.volumes[-3:]))
        base = float(np.sum(self.volumes[-20:-3])) / 17
        if base <= 0:
            base = 1.0
        return recent / base

    @property
    def momentum(self) -> float:
        """Close change over the last 3 bars."""
        return self.closes[self.last] - self.closes[self.last - 3]


def compute_indicator_set(series: CandleSeries, min_bars: int = MIN_BARS) -> IndicatorSet:
    """
    Compute ema(9), ema(21), rsi(14) and atr(14) for a candle series.

    Raises:
        InsufficientDataError: fewer than ``min_bars`` candles
    """
    if len(series) < min_bars:
        raise InsufficientDataError(min_bars, len(series))

    closes = series.get_closes()
    highs = series.get_highs()
    lows = series.get_lows()

    return IndicatorSet(
        closes=closes,
        highs=highs,
        lows=lows,
        volumes=series.get_volumes(),
        ema9=ema(closes, 9),
        ema21=ema(closes, 21),
        rsi14=rsi(closes, 14),
        atr14=atr(highs, lows, closes, 14),
    )
