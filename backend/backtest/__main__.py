"""CLI entry point for the quick replay.

Fetches the latest bars from the exchange and replays the EMA 9/21
crossover with the configured trading Params.

Usage:
    python -m backtest --symbol BTCUSDT --interval 5
    python -m backtest --symbol ETH --interval 15 --preset mean_reversion
    python -m backtest --symbol SOLUSDT -o lab.json
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from app.clients import BybitRestClient
from app.config import get_settings
from app.storage import SUPPORTED_INTERVALS, normalize_symbol
from app.trading_config import TradingConfig, load_trading_config
from core.errors import FetchError

from backtest.engine import REPLAY_BARS, run_quick_backtest
from backtest.report import ReportFormatter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Quick EMA 9/21 crossover replay on the latest bars",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m backtest --symbol BTCUSDT --interval 5
  python -m backtest --symbol ETH --interval 15 --preset mean_reversion
        """,
    )
    parser.add_argument(
        "--symbol",
        type=str,
        default="BTCUSDT",
        help="Symbol to replay; USDT is appended when missing (default: BTCUSDT)",
    )
    parser.add_argument(
        "--interval",
        type=str,
        choices=SUPPORTED_INTERVALS,
        default="5",
        help="Candle interval in minutes (default: 5)",
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=("breakout", "mean_reversion"),
        default=None,
        help="Use a named preset instead of trading.yaml",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path for JSON results",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    """Fetch, replay and report. Returns the process exit code."""
    symbol = normalize_symbol(args.symbol)
    if symbol is None:
        print(f"Error: invalid symbol {args.symbol!r}")
        return 2

    settings = get_settings()
    if args.preset:
        params = TradingConfig(preset=args.preset).get_params()
    else:
        params = load_trading_config(Path(settings.trading_config_path)).get_params()

    client = BybitRestClient(
        base_url=settings.rest_base_url,
        category=settings.category,
        timeout=settings.http_timeout,
    )
    try:
        series = await client.get_klines(symbol, args.interval, REPLAY_BARS)
    except FetchError as e:
        print(f"Error: failed to fetch candles: {e}")
        return 1
    finally:
        await client.close()

    result = run_quick_backtest(series, params)
    ReportFormatter.print_console(symbol, args.interval, result)

    if args.output:
        ReportFormatter.save_json(symbol, args.interval, result, args.output)
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
