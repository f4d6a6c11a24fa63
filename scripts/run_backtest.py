#!/usr/bin/env python3
"""
Backtest the strategy profiles, compare ranking methods, or print the
recommended series for a live round, using the round-data API.

Usage:
    # Backtest a round range and save the JSON report
    python scripts/run_backtest.py backtest --start 1000 --end 1500 --save

    # Check a range for rounds with duplicate winner reports first
    python scripts/run_backtest.py scan --start 1000 --end 1500

    # Compare ranking methods over the same range
    python scripts/run_backtest.py compare --start 1000 --end 1500

    # Recommended bets for one round
    python scripts/run_backtest.py recommend --round 1501

Ctrl-C during a backtest stops after the current round and still prints
the metrics of the rounds already evaluated.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from arena_edge.core.strategy_config import EngineSettings
from arena_edge.services.backtest import BacktestEngine, compare_ranking_methods
from arena_edge.services.recommendations import format_recommendations, generate_recommendations
from arena_edge.services.report import (
    format_backtest_report,
    format_method_comparison,
    save_report,
)
from arena_edge.services.round_data import RoundDataClient, RoundDataUnavailableError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _cancel_on_interrupt() -> threading.Event:
    cancel = threading.Event()

    def _handler(signum, frame):
        logger.warning("Interrupt received, stopping after the current round...")
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    return cancel


def main():
    parser = argparse.ArgumentParser(
        description="Backtest multi-arena betting strategies"
    )
    parser.add_argument("command", choices=["backtest", "scan", "compare", "recommend"])
    parser.add_argument("--start", type=int, help="First round of the window")
    parser.add_argument("--end", type=int, help="Last round of the window (inclusive)")
    parser.add_argument("--round", type=int, dest="round_id", help="Round to recommend for")
    parser.add_argument(
        "--save", action="store_true",
        help="Write the backtest report as JSON under REPORTS_DIR",
    )
    parser.add_argument("--api-url", type=str, default=None, help="Override ROUND_DATA_API_URL")

    args = parser.parse_args()

    settings = EngineSettings.from_env()
    client = RoundDataClient(base_url=args.api_url)

    if args.command == "recommend":
        if args.round_id is None:
            parser.error("recommend requires --round")
        try:
            recs = generate_recommendations(args.round_id, client, settings=settings)
        except RoundDataUnavailableError as e:
            logger.error("Cannot build recommendations: %s", e)
            return 1
        print(format_recommendations(recs))
        return 0

    if args.start is None or args.end is None:
        parser.error(f"{args.command} requires --start and --end")

    engine = BacktestEngine(client, client, settings=settings)
    try:
        if args.command == "scan":
            flagged = engine.find_rounds_with_multiple_winners(args.start, args.end)
            print(f"{len(flagged)} rounds with multiple winners: {flagged}")
        elif args.command == "compare":
            comparison = compare_ranking_methods(
                engine, args.start, args.end, cancel_event=_cancel_on_interrupt()
            )
            print(format_method_comparison(comparison))
        else:
            report = engine.run(args.start, args.end, cancel_event=_cancel_on_interrupt())
            print(format_backtest_report(report))
            if args.save:
                save_report(report, settings.reports_dir)
    except RoundDataUnavailableError as e:
        logger.error("Backtest aborted: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
