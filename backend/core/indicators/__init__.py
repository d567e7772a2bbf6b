"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    MIN_BARS,
    RSI_EPSILON,
    IndicatorSet,
    atr,
    compute_indicator_set,
    ema,
    highest,
    lowest,
    rsi,
    true_range,
    true_range_at,
)

__all__ = [
    "MIN_BARS",
    "RSI_EPSILON",
    "IndicatorSet",
    "atr",
    "compute_indicator_set",
    "ema",
    "highest",
    "lowest",
    "rsi",
    "true_range",
    "true_range_at",
]
