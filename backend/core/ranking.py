"""Ranking of candidate signals and the derived insight view.

Pure functions: nothing here mutates a signal.
"""

from __future__ import annotations

from typing import Iterable

from core.models import Side, Signal


def rank_key(signal: Signal) -> tuple[float, float]:
    """Sort key: confidence desc, then |take_profit - entry| desc."""
    return (-signal.meta.confidence, -signal.reward_distance)


def rank_signals(signals: Iterable[Signal]) -> list[Signal]:
    """Order candidates for presentation priority.

    Highest confidence first; ties go to the signal with the larger
    distance to take profit. Remaining ties keep input order.
    """
    return sorted(signals, key=rank_key)


def risk_reward(signal: Signal) -> float:
    """Reward distance over risk distance (0 when the stop sits on entry)."""
    risk = signal.risk_distance
    return signal.reward_distance / risk if risk > 0 else 0.0


def score_signal(signal: Signal) -> float:
    """Composite score (roughly 0..170) blending confidence, R/R, volume and volatility."""
    rr_score = max(0.0, min(40.0, risk_reward(signal) * 10))
    vol_score = max(0.0, min(20.0, (signal.meta.vol_boost - 1) * 20))
    atr_penalty = max(0.0, 10 - signal.meta.atr_pct * 100)
    return signal.meta.confidence + rr_score + vol_score + atr_penalty


def top_picks(signals: Iterable[Signal], n: int = 5) -> list[Signal]:
    """Best ``n`` signals by composite score."""
    return sorted(signals, key=score_signal, reverse=True)[:n]


def narrative(signal: Signal) -> str:
    """Short human-readable read of a signal's setup quality."""
    confidence = signal.meta.confidence
    rr = risk_reward(signal)
    rsi = signal.meta.rsi if signal.meta.rsi is not None else 50.0

    lines = []
    if confidence >= 70:
        lines.append("High confidence trend + volume alignment.")
    elif confidence >= 50:
        lines.append("Moderate confidence with improving momentum.")
    else:
        lines.append("Cautious setup; wait for stronger confirmation.")

    if rr >= 1.5:
        lines.append("Attractive risk/reward profile.")
    elif rr >= 1.0:
        lines.append("Balanced R/R.")
    else:
        lines.append("Weak R/R; consider tighter SL or skip.")

    if signal.meta.vol_boost > 1.15:
        lines.append("Volume expansion supports continuation.")
    if signal.side == Side.LONG and rsi > 70:
        lines.append("RSI elevated; risk of pullback.")
    if signal.side == Side.SHORT and rsi < 30:
        lines.append("RSI depressed; risk of mean reversion.")

    return " ".join(lines)
