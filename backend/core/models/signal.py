"""Signal and lifecycle data models."""

import hashlib
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Side(str, Enum):
    """Trade direction."""

    LONG = "LONG"
    SHORT = "SHORT"


class SignalStatus(str, Enum):
    """Signal lifecycle status."""

    NEW = "NEW"
    ENTERED = "ENTERED"
    TP = "TP"  # Take profit hit
    SL = "SL"  # Stop loss hit
    CANCELLED = "CANCELLED"  # Timed out without touching TP or SL

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SignalStatus.TP, SignalStatus.SL, SignalStatus.CANCELLED})


def generate_signal_id(symbol: str, interval: str, created_at: datetime, side: Side) -> str:
    """Generate deterministic signal ID from signal attributes.

    The same (symbol, interval, time, side) always maps to the same ID,
    so a restored history never gets duplicate entries for one decision.
    """
    ts_str = created_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{interval}:{ts_str}:{side.value}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class SignalMeta(BaseModel):
    """Indicator snapshot that explains a signal."""

    model_config = ConfigDict(frozen=True)

    vol_boost: float
    atr_pct: float
    rsi: float | None = None
    confidence: float = 0.0
    momentum: float = 0.0


class Signal(BaseModel):
    """Directional trade signal.

    Entry, take profit and stop loss are fixed at creation; only
    ``status``, ``entered_at`` and ``closed_at`` change afterwards, and
    only through the lifecycle state machine.
    """

    id: str = ""  # Set in model_post_init
    symbol: str
    interval: str = "5"
    side: Side
    entry: float = Field(frozen=True)
    take_profit: float = Field(frozen=True)
    stop_loss: float = Field(frozen=True)
    leverage: int
    amount: float
    capital: float
    target_profit_usdt: float
    risk_usdt: float
    quantity: float | None = None
    meta: SignalMeta
    reasoning: str = ""
    status: SignalStatus = SignalStatus.NEW
    created_at: datetime
    entered_at: datetime | None = None
    closed_at: datetime | None = None
    exit_price: float | None = None

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                generate_signal_id(self.symbol, self.interval, self.created_at, self.side),
            )

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    @property
    def reward_distance(self) -> float:
        """Absolute price distance from entry to take profit."""
        return abs(self.take_profit - self.entry)

    @property
    def risk_distance(self) -> float:
        """Absolute price distance from entry to stop loss."""
        return abs(self.entry - self.stop_loss)

    @property
    def pnl(self) -> float:
        """Realised P&L in USDT (zero until TP or SL)."""
        if self.status == SignalStatus.TP:
            return self.target_profit_usdt
        if self.status == SignalStatus.SL:
            return -self.risk_usdt
        return 0.0


class LifecycleStats(BaseModel):
    """Aggregate outcome counts over terminal signals."""

    total: int = 0
    wins: int = 0
    losses: int = 0
    cancelled: int = 0
    pnl: float = 0.0

    @classmethod
    def from_signals(cls, signals) -> "LifecycleStats":
        """Fold over all terminal signals."""
        stats = cls()
        for signal in signals:
            if not signal.status.is_terminal:
                continue
            stats.total += 1
            if signal.status == SignalStatus.TP:
                stats.wins += 1
            elif signal.status == SignalStatus.SL:
                stats.losses += 1
            else:
                stats.cancelled += 1
            stats.pnl += signal.pnl
        return stats

    @property
    def win_rate(self) -> float:
        """Win rate over resolved (TP/SL) signals, in percent."""
        resolved = self.wins + self.losses
        if resolved == 0:
            return 0.0
        return self.wins / resolved * 100

