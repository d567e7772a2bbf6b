"""Quick heuristic replay ("Strategy Lab").

Only depends on core/ for business logic; the CLI borrows app/ clients
to fetch the latest bars.

Usage:
    python -m backtest --symbol BTCUSDT --interval 5
"""

from backtest.engine import QuickBacktestResult, QuickTrade, run_quick_backtest

__all__ = ["QuickBacktestResult", "QuickTrade", "run_quick_backtest"]
