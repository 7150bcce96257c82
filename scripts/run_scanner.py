#!/usr/bin/env python3
"""Run the watchlist scan scheduler headless.

Usage:
    python scripts/run_scanner.py --symbols AAPL MSFT BTC-USD
    python scripts/run_scanner.py --symbols SPY --interval 60 --no-ai
    python scripts/run_scanner.py --once --db /tmp/signalcore.db
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Run the signalcore scan scheduler")
    parser.add_argument(
        "--symbols", nargs="+", default=[],
        help="Symbols to add to the watchlist before starting"
    )
    parser.add_argument(
        "--interval", type=int, default=30,
        help="Scan interval in minutes for added symbols (5-1440)"
    )
    parser.add_argument(
        "--min-confidence", type=float, default=60.0,
        help="Minimum pattern confidence kept by scans"
    )
    parser.add_argument("--no-ai", action="store_true", help="Disable advisory calls for added symbols")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--provider", default=None, help="Market data provider (default from settings)")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    args = parser.parse_args()

    from signalcore.advisory import Advisor, OllamaAdvisoryProvider
    from signalcore.config import get_settings, setup_logging
    from signalcore.core.models import WatchlistItem
    from signalcore.data import SQLiteStore, get_provider
    from signalcore.scanner import ScanScheduler, WatchlistScanner

    settings = get_settings()
    logger = setup_logging()

    interval = min(max(args.interval, settings.SCAN_INTERVAL_MIN_MINUTES), settings.SCAN_INTERVAL_MAX_MINUTES)
    store = SQLiteStore(args.db or settings.DATABASE_PATH)
    existing = {i.symbol for i in store.list_watchlist(active_only=False)}
    for symbol in (s.strip().upper() for s in args.symbols if s.strip()):
        if symbol in existing:
            continue
        store.save_watchlist_item(WatchlistItem(
            symbol=symbol,
            scan_interval_minutes=interval,
            min_confidence=args.min_confidence,
            enable_ai=not args.no_ai,
        ))
        logger.info(f"Added {symbol} to watchlist")

    provider = get_provider(args.provider)
    advisor = Advisor(OllamaAdvisoryProvider(), store)
    scheduler = ScanScheduler(WatchlistScanner(provider, store, advisor), store)

    async def run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        if args.once:
            summary = await scheduler.tick(stop)
            if summary is not None:
                logger.info(
                    f"Tick done: {summary.resolved_trades} trades resolved, "
                    f"{len(summary.reports)} scans, {len(summary.alerts)} alerts"
                )
            return
        await scheduler.run(stop)

    asyncio.run(run())
    store.close()


if __name__ == "__main__":
    main()
