#!/usr/bin/env python3
"""
Polymarket Snipe Engine -- entry point.

Places resting limit orders a few percent below market on liquid binary
markets and waits for price dips to fill them:
  1. Scan markets, score order book depth, price a discount
  2. Place a ladder of resting orders (auto-execute) or report opportunities
  3. Poll for fills, open positions, mark them to market
  4. Expire and resubmit stale orders, enforce the daily loss limit

Usage:
  python run.py                     # paper mode, report opportunities only
  python run.py --auto-execute      # paper mode, place orders automatically
  python run.py --live              # live prices, manual confirmation only
  python run.py --once --limit 20   # one pass over 20 markets, then exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from client.market_data import PolymarketData
from config import EngineSettings, load_settings
from executor.engine import SnipeEngine
from executor.positions import MarketPriceSource, RandomWalkPriceSource
from executor.risk import RiskLimitBreach
from monitor.ledger import TradeLedger
from monitor.logger import log_engine_event, setup_logging
from state.store import SqliteStore

logger = logging.getLogger(__name__)

_BANNER = """
  ====================================
    Polymarket Snipe Engine
  ====================================
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Polymarket Snipe Engine")
    parser.add_argument("--live", action="store_true", help="Real trading mode: live prices, auto-execute disabled")
    parser.add_argument("--auto-execute", action="store_true", help="Place the best opportunity automatically each scan")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--db", type=str, default=None, help="SQLite state file (default: SNIPE_STATE_DB or snipe_state.db)")
    parser.add_argument("--once", action="store_true", help="Run one pass of every loop and exit")
    parser.add_argument("--limit", type=int, default=0, help="Max markets to scan per cycle (0 = settings default)")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> EngineSettings:
    """Apply CLI flags on top of environment settings."""
    overrides: dict = {}
    if args.live:
        overrides["real_trading_mode"] = True
    if args.auto_execute:
        overrides["auto_execute"] = True
    if args.db:
        overrides["state_db"] = args.db
    if args.limit > 0:
        overrides["market_page_size"] = args.limit
    return load_settings(**overrides)


def _mode_label(settings: EngineSettings) -> str:
    if settings.real_trading_mode:
        return "LIVE (manual confirmation)"
    if settings.auto_execute_enabled:
        return "PAPER (auto-execute)"
    return "PAPER (report only)"


def print_startup(settings: EngineSettings) -> None:
    logger.info("  Mode: %s", _mode_label(settings))
    logger.info(
        "  Target discount %.1f%%, min profit %.1f%%, max position $%.0f",
        settings.target_discount, settings.min_profit_percent, settings.max_position_size,
    )
    logger.info(
        "  Ladder: %d tier(s), timeout %.0fmin, resubmit %s (max %d)",
        settings.ladder_tiers, settings.timeout_minutes,
        "on" if settings.resubmit_after_cancel else "off", settings.max_resubmits,
    )
    logger.info("  Daily loss limit: $%.2f", settings.daily_loss_limit)
    if settings.auto_execute and settings.real_trading_mode:
        logger.warning("  Auto-execute requested but disabled in real trading mode")


async def run_engine(settings: EngineSettings, once: bool = False) -> int:
    store = SqliteStore(settings.state_db)
    async with PolymarketData.from_settings(settings) as market_data:
        if settings.real_trading_mode:
            price_source = MarketPriceSource(market_data)
        else:
            price_source = RandomWalkPriceSource()

        engine = SnipeEngine(
            settings=settings,
            market_data=market_data,
            persistence=store,
            price_source=price_source,
            ledger=TradeLedger(settings.ledger_path),
        )
        engine.events.subscribe(log_engine_event)

        orders, positions, risk_state, trades = store.load_open_state()
        engine.restore(orders, positions, risk_state, trades)

        try:
            await engine.start()
        except RiskLimitBreach as e:
            logger.error("%s", e)
            store.close()
            return 1

        if once:
            await engine.tick_all()
            await engine.stop()
            logger.info("Metrics: %s", engine.metrics().summary())
            logger.info("Store: %s", store.stats)
            store.close()
            return 0

        loop = asyncio.get_running_loop()

        def request_shutdown(signum: int) -> None:
            logger.info("Signal %d received, shutting down...", signum)
            loop.create_task(engine.shutdown())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, request_shutdown, sig)

        try:
            await engine.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            logger.info("Final metrics: %s", engine.metrics().summary())
            logger.info("Store: %s", store.stats)
            store.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = build_settings(args)

    log_file_path = setup_logging(settings.log_level, json_log_file=args.json_log)
    logger.info(_BANNER.strip())
    logger.info("  Log file: %s", log_file_path)
    print_startup(settings)

    sys.exit(asyncio.run(run_engine(settings, once=args.once)))


if __name__ == "__main__":
    main()
