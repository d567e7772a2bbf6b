"""Quick heuristic replay over the latest bars.

Replays an EMA 9/21 crossover on a fetched candle window with TP/SL
sized from the current Params. This is a sanity check of the sizing on
recent data, not a statistical backtest: every crossover is an
independent trade, overlapping trades are allowed and trades that touch
neither level inside the look-ahead window are skipped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from core.indicators import ema
from core.models import CandleSeries, Params, Side, SignalStatus

logger = logging.getLogger(__name__)

MIN_REPLAY_BARS = 60
REPLAY_BARS = 240
# First bar where both EMAs have had time to separate from the seed
FIRST_CROSS_INDEX = 22
# Bars after entry scanned for a TP/SL touch
LOOKAHEAD_BARS = 14
# Leverage used when Params carries none, and the hard cap
DEFAULT_REPLAY_LEVERAGE = 10
MAX_REPLAY_LEVERAGE = 50

NOTE_INSUFFICIENT = "Insufficient data"
NOTE_NO_TRADES = "No trades triggered on recent data."
NOTE_OK = "EMA crossover quick test with fixed TP/SL windows."


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass
class QuickTrade:
    """One resolved replay trade."""

    index: int  # Bar of the crossover; entry is the next bar's close
    side: Side
    entry: float
    exit: float
    outcome: SignalStatus  # TP or SL
    r: float
    pnl: float


@dataclass
class QuickBacktestResult:
    """Summary of a quick replay."""

    trades: int = 0
    wins: int = 0
    losses: int = 0
    pnl: float = 0.0
    win_rate: int = 0  # Percent, rounded
    avg_r: float = 0.0
    max_drawdown: int = 0  # Percent of running peak P&L, rounded
    note: str = NOTE_INSUFFICIENT
    history: list[QuickTrade] = field(default_factory=list)


def _first_touch(
    favorable: list[float],
    adverse: list[float],
    tp: float,
    sl: float,
    side: Side,
) -> SignalStatus | None:
    """Which level the window touches first. Same-bar touches count as SL."""
    if side == Side.LONG:
        hit_tp = next((j for j, x in enumerate(favorable) if x >= tp), None)
        hit_sl = next((j for j, x in enumerate(adverse) if x <= sl), None)
    else:
        hit_tp = next((j for j, x in enumerate(favorable) if x <= tp), None)
        hit_sl = next((j for j, x in enumerate(adverse) if x >= sl), None)

    if hit_tp is None and hit_sl is None:
        return None
    if hit_sl is None or (hit_tp is not None and hit_tp < hit_sl):
        return SignalStatus.TP
    return SignalStatus.SL


def run_quick_backtest(series: CandleSeries, params: Params) -> QuickBacktestResult:
    """
    Replay EMA 9/21 crossovers on ``series``.

    Args:
        series: Oldest-first candles (at least 60 bars)
        params: Sizing and side toggles

    Returns:
        QuickBacktestResult (zeroed with an "insufficient data" note
        when the series is too short)
    """
    closes = series.get_closes()
    if len(closes) < MIN_REPLAY_BARS:
        return QuickBacktestResult()

    highs = series.get_highs()
    lows = series.get_lows()
    ema9 = ema(closes, 9)
    ema21 = ema(closes, 21)

    leverage = min(params.max_leverage or DEFAULT_REPLAY_LEVERAGE, MAX_REPLAY_LEVERAGE)
    notional = max(1e-9, params.amount * leverage)
    tp_frac = params.target_profit / notional
    sl_frac = params.risk / notional

    result = QuickBacktestResult()
    peak = 0.0
    r_sum = 0.0

    for i in range(FIRST_CROSS_INDEX, len(closes) - 1):
        cross_up = ema9[i - 1] <= ema21[i - 1] and ema9[i] > ema21[i]
        cross_down = ema9[i - 1] >= ema21[i - 1] and ema9[i] < ema21[i]
        entry = closes[i + 1]
        window = slice(i + 1, i + 1 + LOOKAHEAD_BARS)

        if cross_up and params.enable_longs:
            side = Side.LONG
            tp, sl = entry * (1 + tp_frac), entry * (1 - sl_frac)
            outcome = _first_touch(highs[window], lows[window], tp, sl, side)
        elif cross_down and params.enable_shorts:
            side = Side.SHORT
            tp, sl = entry * (1 - tp_frac), entry * (1 + sl_frac)
            outcome = _first_touch(lows[window], highs[window], tp, sl, side)
        else:
            continue

        if outcome is None:
            continue

        if outcome == SignalStatus.TP:
            result.wins += 1
            r, exit_price, trade_pnl = tp_frac / sl_frac, tp, params.target_profit
        else:
            result.losses += 1
            r, exit_price, trade_pnl = -1.0, sl, -params.risk

        result.pnl += trade_pnl
        r_sum += r
        peak = max(peak, result.pnl)
        if peak != 0:
            drawdown = _round_half_up((peak - result.pnl) / max(1e-9, peak) * 100)
            result.max_drawdown = max(result.max_drawdown, drawdown)

        result.history.append(
            QuickTrade(
                index=i,
                side=side,
                entry=entry,
                exit=exit_price,
                outcome=outcome,
                r=r,
                pnl=trade_pnl,
            )
        )

    result.trades = result.wins + result.losses
    if result.trades:
        result.win_rate = _round_half_up(result.wins / result.trades * 100)
        result.avg_r = round(r_sum / result.trades, 2)
        result.note = NOTE_OK
    else:
        result.note = NOTE_NO_TRADES

    logger.debug(
        f"Quick replay {series.symbol} {series.interval}m: {result.trades} trades, "
        f"pnl={result.pnl:+.2f}"
    )
    return result
