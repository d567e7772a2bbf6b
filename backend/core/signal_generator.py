"""Signal decision engine.

This module is pure business logic with no I/O dependencies. Given a
candle series, the live tick price and a Params snapshot it decides
whether to emit a LONG or SHORT signal and sizes entry/TP/SL. It is
shared by the live service (app/) and the replay tooling (backtest/).
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from core.errors import InsufficientDataError
from core.indicators import MIN_BARS, IndicatorSet, compute_indicator_set, highest, lowest
from core.models import (
    CandleSeries,
    InstrumentInfo,
    MarketMetrics,
    Params,
    Side,
    Signal,
    SignalMeta,
)

logger = logging.getLogger(__name__)

# (upper bound on atr_pct, leverage) pairs, checked in order
LEVERAGE_TIERS: tuple[tuple[float, int], ...] = (
    (0.008, 50),
    (0.015, 25),
    (0.03, 15),
)
FALLBACK_LEVERAGE = 10

# RSI assumed when the indicator is still warming up
NEUTRAL_RSI = 50.0


def leverage_for_volatility(atr_pct: float, max_leverage: int | None = None) -> int:
    """Pick a leverage tier from ATR% and clamp it to ``max_leverage``."""
    leverage = FALLBACK_LEVERAGE
    for bound, tier in LEVERAGE_TIERS:
        if atr_pct < bound:
            leverage = tier
            break
    if max_leverage:
        leverage = min(max_leverage, leverage)
    return leverage


def round_to_tick(price: float, tick_size: float) -> float:
    """Round a price to the nearest tick increment."""
    if tick_size <= 0:
        return price
    tick = Decimal(str(tick_size))
    steps = (Decimal(str(price)) / tick).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(steps * tick)


def floor_to_step(quantity: float, step: float) -> float:
    """Round a quantity down to the lot size."""
    if step <= 0:
        return quantity
    lot = Decimal(str(step))
    steps = (Decimal(str(quantity)) / lot).quantize(Decimal("1"), rounding=ROUND_FLOOR)
    return float(steps * lot)


def breakout_ok(
    side: Side,
    price: float,
    range_high: float,
    range_low: float,
    buffer: float,
) -> bool:
    """
    Check the breakout filter for one side.

    Non-negative buffer: LONG needs price above ``range_high * (1 - buffer)``,
    SHORT needs price below ``range_low * (1 + buffer)``.

    Negative buffer (mean reversion): price must sit inside the range,
    at least ``|buffer|`` away from the edge it would be chasing.
    """
    if buffer >= 0:
        if side == Side.LONG:
            return price > range_high * (1 - buffer)
        return price < range_low * (1 + buffer)

    margin = -buffer
    if side == Side.LONG:
        return range_low <= price <= range_high * (1 - margin)
    return range_low * (1 + margin) <= price <= range_high


def market_filters_ok(side: Side, metrics: MarketMetrics | None, params: Params) -> bool:
    """Apply optional funding/taker/open-interest filters. Missing metrics never reject."""
    if not params.use_market_filters or metrics is None:
        return True

    if metrics.funding_rate is not None:
        if side == Side.LONG and metrics.funding_rate > params.max_funding_rate:
            return False
        if side == Side.SHORT and metrics.funding_rate < -params.max_funding_rate:
            return False

    if metrics.taker_ratio is not None:
        if side == Side.LONG and metrics.taker_ratio < params.min_taker_ratio:
            return False
        if side == Side.SHORT and metrics.taker_ratio > 1 / params.min_taker_ratio:
            return False

    if metrics.oi_delta is not None and metrics.oi_delta < 0:
        return False

    return True


def calculate_tp_sl(
    side: Side,
    entry: float,
    leverage: int,
    params: Params,
) -> tuple[float, float]:
    """
    Calculate take profit and stop loss prices.

    The required fractional moves come from the USDT targets:
    - TP fraction = (target_profit [+ round-trip fee]) / notional
    - SL fraction = (risk [- round-trip fee]) / notional, floored at min_stop_move

    Returns:
        Tuple of (take_profit, stop_loss)
    """
    notional = params.amount * leverage
    fee = 2 * notional * params.taker_fee if params.fee_aware else 0.0

    tp_frac = (params.target_profit + fee) / notional
    sl_frac = max((params.risk - fee) / notional, params.min_stop_move)

    if side == Side.LONG:
        return entry * (1 + tp_frac), entry * (1 - sl_frac)
    return entry * (1 - tp_frac), entry * (1 + sl_frac)


def confidence_score(
    ind: IndicatorSet,
    side: Side,
    rsi_value: float,
    trend_aligned: bool,
) -> float:
    """
    Score a candidate 0-100 for ranking and display.

    trend 30 + volume up to 25 + momentum/ATR up to 25 + RSI positioning up to 20.
    """
    score = 30.0 if trend_aligned else 0.0

    score += min(25.0, max(0.0, (ind.vol_boost - 1) * 50))

    atr_last = ind.atr14[ind.last]
    if atr_last > 0:
        score += min(25.0, abs(ind.momentum) / atr_last * 10)

    sweet_spot = 60.0 if side == Side.LONG else 40.0
    score += max(0.0, 20.0 - abs(rsi_value - sweet_spot))

    return round(max(0.0, min(100.0, score)), 1)


class SignalDecider:
    """
    Decide LONG/SHORT signals from EMA trend, volume pulse, momentum,
    breakout range and RSI gates.

    Strategy Logic:
    - LONG: ema9 > ema21, momentum > 0, volume pulse, breakout above range high, RSI in long band
    - SHORT: ema9 < ema21, momentum < 0, volume pulse, breakdown below range low, RSI in short band
    - LONG is evaluated first and wins a tie

    Sizing:
    - Leverage from ATR% tier, capped by max_leverage
    - TP/SL from USDT target/risk over notional (amount x leverage)
    """

    def __init__(self, min_bars: int = MIN_BARS):
        self.min_bars = min_bars

    def decide(
        self,
        series: CandleSeries,
        tick_price: float | None,
        params: Params,
        instrument: InstrumentInfo | None = None,
        metrics: MarketMetrics | None = None,
        now: datetime | None = None,
    ) -> Signal | None:
        """
        Evaluate the decision rules at the latest bar.

        Args:
            series: Oldest-first candles (at least ``min_bars``)
            tick_price: Latest live price for the symbol
            params: Parameter snapshot for this cycle
            instrument: Optional precision used to round prices and quantity
            metrics: Optional funding/taker/OI metrics for market filters
            now: Creation timestamp (defaults to current UTC time)

        Returns:
            A NEW Signal, or None when no side qualifies
        """
        if not tick_price or tick_price <= 0:
            return None

        try:
            ind = compute_indicator_set(series, self.min_bars)
        except InsufficientDataError as e:
            logger.debug(f"{series.symbol}: {e}, skipping")
            return None

        last = ind.last
        atr_pct = ind.atr_pct
        leverage = leverage_for_volatility(atr_pct, params.max_leverage)

        trend_up = ind.ema9[last] > ind.ema21[last]
        trend_down = ind.ema9[last] < ind.ema21[last]

        vol_boost = ind.vol_boost
        momentum = ind.momentum

        range_high = highest(ind.highs, params.breakout_lookback)
        range_low = lowest(ind.lows, params.breakout_lookback)

        rsi_last = ind.rsi14[last]
        rsi_value = rsi_last if rsi_last is not None else NEUTRAL_RSI

        volume_ok = vol_boost > params.min_vol_boost

        strong_long = (
            trend_up
            and momentum > 0
            and volume_ok
            and breakout_ok(Side.LONG, tick_price, range_high, range_low, params.breakout_buffer)
        )
        strong_short = (
            trend_down
            and momentum < 0
            and volume_ok
            and breakout_ok(Side.SHORT, tick_price, range_high, range_low, params.breakout_buffer)
        )

        rsi_ok_long = params.rsi_long_min < rsi_value < params.rsi_long_max
        rsi_ok_short = params.rsi_short_min < rsi_value < params.rsi_short_max

        side: Side | None = None
        if (
            params.enable_longs
            and strong_long
            and rsi_ok_long
            and market_filters_ok(Side.LONG, metrics, params)
        ):
            side = Side.LONG
        # Trend exclusivity makes a simultaneous LONG/SHORT impossible; LONG still wins
        if (
            side is None
            and params.enable_shorts
            and strong_short
            and rsi_ok_short
            and market_filters_ok(Side.SHORT, metrics, params)
        ):
            side = Side.SHORT

        if side is None:
            return None

        entry = tick_price
        take_profit, stop_loss = calculate_tp_sl(side, entry, leverage, params)

        notional = params.amount * leverage
        quantity = notional / entry
        if instrument:
            entry = round_to_tick(entry, instrument.tick_size)
            take_profit = round_to_tick(take_profit, instrument.tick_size)
            stop_loss = round_to_tick(stop_loss, instrument.tick_size)
            quantity = floor_to_step(quantity, instrument.lot_size)

        confidence = confidence_score(ind, side, rsi_value, trend_aligned=True)

        filter_desc = (
            f"range reversion {params.breakout_lookback} bars"
            if params.is_mean_reversion
            else f"breakout {params.breakout_lookback} bars"
        )
        reasoning = (
            f"{side.value} {series.symbol}: EMA9/21 trend, vol x{vol_boost:.2f}, "
            f"RSI {round(rsi_value)}, {filter_desc}, confidence {confidence:.0f}."
        )

        signal = Signal(
            symbol=series.symbol,
            interval=series.interval,
            side=side,
            entry=entry,
            take_profit=take_profit,
            stop_loss=stop_loss,
            leverage=leverage,
            amount=params.amount,
            capital=params.capital,
            target_profit_usdt=params.target_profit,
            risk_usdt=params.risk,
            quantity=quantity,
            meta=SignalMeta(
                vol_boost=vol_boost,
                atr_pct=atr_pct,
                rsi=rsi_last,
                confidence=confidence,
                momentum=momentum,
            ),
            reasoning=reasoning,
            created_at=now or datetime.now(timezone.utc),
        )
        logger.info(
            f"{side.value} signal: {series.symbol} @ {entry} "
            f"TP={take_profit} SL={stop_loss} lev={leverage}x conf={confidence}"
        )
        return signal
