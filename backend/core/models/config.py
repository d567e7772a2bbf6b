"""Decision parameter models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Params(BaseModel):
    """User-adjustable decision parameters.

    Immutable: one snapshot is taken per decision cycle.
    """

    model_config = ConfigDict(frozen=True)

    # Sizing (USDT)
    capital: float = Field(20.0, gt=0)
    amount: float = Field(20.0, gt=0)  # margin per signal
    target_profit: float = Field(20.0, gt=0)
    risk: float = Field(5.0, gt=0)
    max_leverage: int = Field(50, ge=1)

    # Breakout filter; negative buffer turns it into a mean-reversion filter
    breakout_lookback: int = Field(24, ge=2, le=240)
    breakout_buffer: float = 0.0005

    enable_longs: bool = True
    enable_shorts: bool = True

    # Volume pulse threshold (recent / baseline)
    min_vol_boost: float = 1.05

    # RSI gates (exclusive bounds)
    rsi_long_min: float = 48.0
    rsi_long_max: float = 75.0
    rsi_short_min: float = 25.0
    rsi_short_max: float = 52.0

    # Fees
    taker_fee: float = Field(0.00055, ge=0)
    fee_aware: bool = False

    # Minimum fractional stop distance
    min_stop_move: float = Field(0.0005, gt=0)

    # Lifecycle: minutes before an untouched signal is cancelled (<= 0 disables)
    auto_cancel_mins: float = 120.0

    # Optional derivatives-market filters
    use_market_filters: bool = False
    max_funding_rate: float = 0.0005
    min_taker_ratio: float = Field(1.0, gt=0)

    @model_validator(mode="after")
    def _validate(self):
        if self.rsi_long_min >= self.rsi_long_max:
            raise ValueError("rsi_long_min must be below rsi_long_max")
        if self.rsi_short_min >= self.rsi_short_max:
            raise ValueError("rsi_short_min must be below rsi_short_max")
        if not -1 < self.breakout_buffer < 1:
            raise ValueError("breakout_buffer must be a fraction in (-1, 1)")
        return self

    @property
    def is_mean_reversion(self) -> bool:
        return self.breakout_buffer < 0


# =============================================================================
# Presets
# =============================================================================
BREAKOUT_PARAMS = Params()

# Buys/sells inside the recent range instead of on a break of it
MEAN_REVERSION_PARAMS = Params(
    target_profit=10.0,
    risk=5.0,
    max_leverage=25,
    breakout_lookback=48,
    breakout_buffer=-0.002,
    rsi_long_min=40.0,
    rsi_long_max=65.0,
    rsi_short_min=35.0,
    rsi_short_max=60.0,
    auto_cancel_mins=60.0,
)

PRESETS: dict[str, Params] = {
    "breakout": BREAKOUT_PARAMS,
    "mean_reversion": MEAN_REVERSION_PARAMS,
}
