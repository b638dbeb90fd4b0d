#!/usr/bin/env python3
"""Sportsbook-consensus edge bot for Kalshi game-winner markets.

STRATEGY:
    For each selected sport, pull h2h odds from The Odds API, strip the
    bookmaker vig and average across books to get a fair probability per
    team. Join each team to its Kalshi winner ticker and:
      1. Bid one cent over the best bid, capped at fair value minus the
         bid margin (plus recent fair-value volatility).
      2. Close held positions at the bid once it clears the close margin.
      3. Bail out of stale losers once their loss passes the trigger.

REQUIRES:
    Kalshi API key (RSA key pair) and an Odds API key in .env:
      KALSHI_API_KEY_ID=...
      KALSHI_PRIVATE_KEY_PATH=...  (path to PEM file)
      ODDS_API_KEY=...

USAGE:
    python scripts/run_edge_bot.py --once               # one display-only tick
    python scripts/run_edge_bot.py --auto-bid --auto-close
    python scripts/run_edge_bot.py --demo --sports basketball_nba,icehockey_nhl
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import httpx
import structlog

from kalshi_edge.utils.logging import configure_logging

configure_logging()

from config.settings import settings
from config.validators import validate_kalshi_credentials, validate_odds_api
from kalshi_edge.engine import EngineState, PositionTracker, Scheduler, TradingEngine
from kalshi_edge.feeds import KALSHI_DEMO_API_BASE, KalshiClient, OddsApiClient
from kalshi_edge.pricing import OddsAggregator

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Trade Kalshi game markets against sportsbook consensus"
    )
    p.add_argument("--demo", action="store_true", default=False, help="Use Kalshi demo API")
    p.add_argument("--once", action="store_true", default=False, help="Run a single tick and exit")
    p.add_argument("--trade", action="store_true", default=False, help="Allow orders with --once")
    p.add_argument("--auto-bid", action="store_true", default=None, help="Enable auto-bid")
    p.add_argument("--auto-close", action="store_true", default=None, help="Enable auto-close")
    p.add_argument("--turbo", action="store_true", default=None, help="Poll at the turbo interval")
    p.add_argument("--sports", type=str, default="", help="Comma-separated odds sport keys")
    p.add_argument("--margin", type=float, default=None, help="Bid margin percent")
    p.add_argument("--close-margin", type=float, default=None, help="Auto-close margin percent")
    p.add_argument("--trade-size", type=int, default=None, help="Contracts per order")
    p.add_argument("--max-positions", type=int, default=None, help="Max concurrent positions")
    return p


def build_config(args: argparse.Namespace):
    overrides = {
        "is_auto_bid": args.auto_bid,
        "is_auto_close": args.auto_close,
        "is_turbo_mode": args.turbo,
        "bid_margin_percent": args.margin,
        "auto_close_margin_percent": args.close_margin,
        "trade_size": args.trade_size,
        "max_positions": args.max_positions,
    }
    if args.sports:
        overrides["selected_sports"] = [s.strip() for s in args.sports.split(",") if s.strip()]
    return settings.bot_config().with_updates(
        **{k: v for k, v in overrides.items() if v is not None}
    )


async def main() -> None:
    args = build_parser().parse_args()

    validate_odds_api()
    validate_kalshi_credentials()

    config = build_config(args)
    api_base = KALSHI_DEMO_API_BASE if args.demo else settings.kalshi_api_base
    private_key_pem = Path(settings.KALSHI_PRIVATE_KEY_PATH).read_text()

    kalshi = KalshiClient(
        api_base=api_base,
        api_key_id=settings.KALSHI_API_KEY_ID,
        private_key_pem=private_key_pem,
    )
    odds = OddsApiClient(
        api_key=settings.ODDS_API_KEY,
        base_url=settings.ODDS_API_BASE_URL,
        regions=settings.ODDS_API_REGIONS,
        markets=settings.ODDS_API_MARKETS,
    )
    state = EngineState(
        config=config,
        tracker=PositionTracker(ledger={}),
        aggregator=OddsAggregator(window=settings.EDGE_VOLATILITY_WINDOW),
    )

    print("=== Kalshi Edge Bot ===")
    print(f"  API:           {'demo' if api_base == KALSHI_DEMO_API_BASE else 'production'}")
    print(f"  Sports:        {', '.join(config.selected_sports)}")
    print(f"  Bid margin:    {config.bid_margin_percent}%")
    print(f"  Close margin:  {config.auto_close_margin_percent}%")
    print(f"  Auto-bid:      {config.is_auto_bid}   Auto-close: {config.is_auto_close}")
    print(f"  Max positions: {config.max_positions} x {config.trade_size} contracts")
    print(f"  Interval:      {config.poll_interval}s")
    print()

    async with httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=10.0)) as http:
        engine = TradingEngine(kalshi=kalshi, odds=odds, http=http)
        scheduler = Scheduler(engine, state)
        try:
            if args.once:
                if args.trade:
                    scheduler.enable()
                await scheduler.fire()
                print(state.event_log.format())
            else:
                await scheduler.start()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("edge_bot_interrupted")
        finally:
            if scheduler.running:
                await scheduler.stop()
            await kalshi.close()

    stats = state.stats()
    print(
        f"exposure={stats.exposure_cents}c realized={stats.realized_pnl_cents}c "
        f"win_rate={stats.win_rate_percent}% t={stats.t_stat:.2f}"
    )


if __name__ == "__main__":
    asyncio.run(main())
