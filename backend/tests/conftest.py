"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from core.models import CandleSeries, Side, Signal, SignalMeta


def build_trend_series(
    symbol: str = "BTCUSDT",
    direction: int = 1,
    bars: int = 60,
    start: float = 1000.0,
    volume: float = 100.0,
    last_volume: float = 120.0,
) -> CandleSeries:
    """Zig-zag trend: alternating +1.5 / -1.0 moves (mirrored for direction=-1).

    The last move is always the larger one, highs/lows sit 0.5 around the
    close and the last 3 bars carry ``last_volume``.
    """
    closes = [start]
    for i in range(1, bars):
        step = 1.5 if i % 2 == 1 else -1.0
        closes.append(closes[-1] + direction * step)
    volumes = [volume] * (bars - 3) + [last_volume] * 3
    return CandleSeries.from_arrays(
        symbol,
        "5",
        opens=closes,
        highs=[c + 0.5 for c in closes],
        lows=[c - 0.5 for c in closes],
        closes=closes,
        volumes=volumes,
    )


def build_signal(
    symbol: str = "BTCUSDT",
    side: Side = Side.LONG,
    entry: float = 100.0,
    take_profit: float = 105.0,
    stop_loss: float = 98.0,
    confidence: float = 50.0,
    created_at: datetime | None = None,
    **meta,
) -> Signal:
    return Signal(
        symbol=symbol,
        side=side,
        entry=entry,
        take_profit=take_profit,
        stop_loss=stop_loss,
        leverage=50,
        amount=20.0,
        capital=20.0,
        target_profit_usdt=20.0,
        risk_usdt=5.0,
        meta=SignalMeta(
            vol_boost=meta.get("vol_boost", 1.2),
            atr_pct=meta.get("atr_pct", 0.002),
            rsi=meta.get("rsi", 60.0),
            confidence=confidence,
            momentum=meta.get("momentum", 1.0),
        ),
        created_at=created_at or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def long_series() -> CandleSeries:
    """60-bar uptrend that qualifies for a LONG with the default Params."""
    return build_trend_series(direction=1)


@pytest.fixture
def short_series() -> CandleSeries:
    """60-bar downtrend that qualifies for a SHORT with the default Params."""
    return build_trend_series(direction=-1)


@pytest.fixture
def make_signal():
    """Factory for test signals."""
    return build_signal


@pytest.fixture
def make_series():
    """Factory for zig-zag trend series."""
    return build_trend_series
