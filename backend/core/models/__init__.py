"""Data models shared by the live service and the replay engine."""

from core.models.config import BREAKOUT_PARAMS, MEAN_REVERSION_PARAMS, PRESETS, Params
from core.models.kline import MAX_CANDLES, Candle, CandleSeries
from core.models.market import InstrumentInfo, MarketMetrics, PriceTick
from core.models.signal import (
    TERMINAL_STATUSES,
    LifecycleStats,
    Side,
    Signal,
    SignalMeta,
    SignalStatus,
    generate_signal_id,
)

__all__ = [
    "Params",
    "BREAKOUT_PARAMS",
    "MEAN_REVERSION_PARAMS",
    "PRESETS",
    "MAX_CANDLES",
    "Candle",
    "CandleSeries",
    "InstrumentInfo",
    "MarketMetrics",
    "PriceTick",
    "TERMINAL_STATUSES",
    "LifecycleStats",
    "Side",
    "Signal",
    "SignalMeta",
    "SignalStatus",
    "generate_signal_id",
]
