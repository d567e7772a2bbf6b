"""Report formatting for quick replay results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

import json

from backtest.engine import QuickBacktestResult


def _fmt_price(n: float, precision: int = 6) -> str:
    """Scale decimals to the price magnitude."""
    if n > 100:
        return f"{n:.2f}"
    if n > 1:
        return f"{n:.4f}"
    return f"{n:.{precision}f}"


class ReportFormatter:
    """Format replay results for display and export."""

    @staticmethod
    def print_console(symbol: str, interval: str, result: QuickBacktestResult) -> None:
        """Print formatted report to console."""
        print("\n" + "=" * 60)
        print(f"  STRATEGY LAB: {symbol} {interval}m")
        print("=" * 60)
        print(f"  Trades:       {result.trades}")
        print(f"  Wins (TP):    {result.wins}")
        print(f"  Losses (SL):  {result.losses}")
        print(f"  Win rate:     {result.win_rate}%")
        print(f"  P&L:          {result.pnl:+.2f} USDT")
        print(f"  Avg R:        {result.avg_r:.2f}")
        print(f"  Max DD:       {result.max_drawdown}%")
        print(f"  Note:         {result.note}")

        if result.history:
            print("\n" + "-" * 60)
            print("  TRADES")
            print("-" * 60)
            print(f"  {'Bar':>5} {'Side':<6} {'Entry':>14} {'Exit':>14} {'Result':>7} {'R':>6}")
            for t in result.history:
                print(
                    f"  {t.index:>5} {t.side.value:<6} {_fmt_price(t.entry):>14} "
                    f"{_fmt_price(t.exit):>14} {t.outcome.value:>7} {t.r:>+6.2f}"
                )

        print("\n" + "=" * 60)

    @staticmethod
    def to_dict(symbol: str, interval: str, result: QuickBacktestResult) -> dict:
        """Convert results to JSON-serializable dict."""
        return {
            "symbol": symbol,
            "interval": interval,
            "summary": {
                "trades": result.trades,
                "wins": result.wins,
                "losses": result.losses,
                "pnl": round(result.pnl, 4),
                "win_rate": result.win_rate,
                "avg_r": result.avg_r,
                "max_drawdown": result.max_drawdown,
                "note": result.note,
            },
            "trades": [
                {
                    "index": t.index,
                    "side": t.side.value,
                    "entry": t.entry,
                    "exit": t.exit,
                    "outcome": t.outcome.value,
                    "r": round(t.r, 4),
                    "pnl": t.pnl,
                }
                for t in result.history
            ],
        }

    @staticmethod
    def save_json(symbol: str, interval: str, result: QuickBacktestResult, filepath: str) -> None:
        """Save results to JSON file."""
        data = ReportFormatter.to_dict(symbol, interval, result)
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2)
        print(f"\nResults saved to {filepath}")
