"""TradingEngine: one tick = fetch, join, reconcile, decide.

Data flow per tick::

    odds (per sport) ──> OddsAggregator ──┐
                                          ├──> MarketMatcher.join ──> StrategyEngine
    markets (per series) ─────────────────┘                              ▲
    positions + resting orders ──> PositionTracker.reconcile ────────────┘

Everything a decision reads is fetched inside the same tick; nothing is
carried over from a previous tick except the fair-value history and the
tracker's reconciled snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import structlog

from kalshi_edge.engine.config import BotConfig
from kalshi_edge.engine.event_log import EventLog
from kalshi_edge.engine.order_manager import OrderManager
from kalshi_edge.engine.stats import PortfolioStats, compute_stats
from kalshi_edge.engine.strategy import StrategyEngine, TickReport
from kalshi_edge.engine.tracker import PositionTracker
from kalshi_edge.exceptions import AuthError, DataUnavailable
from kalshi_edge.feeds.kalshi import KalshiClient
from kalshi_edge.feeds.odds_api import OddsApiClient, OddsApiUsage
from kalshi_edge.matching.market_matcher import MarketMatcher
from kalshi_edge.models import JoinedMarket, Market, OddsEvent, Order, Position
from kalshi_edge.pricing.odds import OddsAggregator

logger = structlog.get_logger()


@dataclass
class EngineState:
    """Everything the engine carries between ticks, passed explicitly."""

    config: BotConfig
    tracker: PositionTracker = field(default_factory=PositionTracker)
    aggregator: OddsAggregator = field(default_factory=OddsAggregator)
    event_log: EventLog = field(default_factory=EventLog)
    odds_events: list[OddsEvent] = field(default_factory=list)
    markets: list[Market] = field(default_factory=list)
    joined: list[JoinedMarket] = field(default_factory=list)
    last_fetch_at: Optional[datetime] = None
    odds_usage: Optional[OddsApiUsage] = None
    balance_cents: Optional[int] = None

    def stats(self) -> PortfolioStats:
        return compute_stats(
            self.tracker.current_positions(),
            self.tracker.current_resting_orders(),
            self.tracker.ledger_snapshot(),
        )


@dataclass(slots=True)
class TickResult:
    odds_ok: bool = False
    markets_fetched: int = 0
    joined: int = 0
    reconciled: bool = False
    trading: bool = False
    report: Optional[TickReport] = None
    error: Optional[str] = None


class TradingEngine:
    """Wires the feeds, matcher, tracker and strategy into a single tick."""

    def __init__(
        self,
        *,
        kalshi: KalshiClient,
        odds: OddsApiClient,
        http: httpx.AsyncClient,
        matcher: Optional[MarketMatcher] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.kalshi = kalshi
        self.odds = odds
        self.http = http
        self.matcher = matcher or MarketMatcher()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._is_enabled: Callable[[], bool] = lambda: True
        self._on_critical: Optional[Callable[[str], None]] = None
        self.orders_placed = 0

    def set_gate(
        self,
        is_enabled: Callable[[], bool],
        on_critical: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Install the enable check consulted before every order submission."""
        self._is_enabled = is_enabled
        self._on_critical = on_critical

    async def tick(self, state: EngineState, trading_allowed: bool) -> TickResult:
        result = TickResult()
        try:
            await self._run_tick(state, trading_allowed, result)
        except AuthError as exc:
            # Trading actions for this tick are abandoned; the loop goes on
            result.error = str(exc)
            logger.error("tick_auth_failed", error=str(exc))
            state.event_log.add(f"Auth failed: {exc}", "ERROR")
        return result

    async def _run_tick(
        self, state: EngineState, trading_allowed: bool, result: TickResult
    ) -> None:
        config = state.config
        fetched_at = self._now()

        events, failed_sports = await self._fetch_odds(state, config)
        result.odds_ok = events is not None
        markets, failed_series = await self._fetch_markets(config)
        result.markets_fetched = len(markets)

        if events is not None:
            state.aggregator.observe_events(events, fetched_at)
            state.aggregator.forget({e.event_id for e in events})
            state.odds_events = events
            state.last_fetch_at = fetched_at
            joined = self.matcher.join(events, markets, state.aggregator)
        else:
            state.odds_events = []
            joined = []
        state.markets = markets
        state.joined = joined
        result.joined = len(joined)

        positions, orders = await self._fetch_portfolio(state)
        result.reconciled = state.tracker.reconcile(positions, orders)

        if not trading_allowed:
            logger.debug("tick_display_only", joined=len(joined))
            return
        if not state.tracker.reconciled_once:
            logger.warning("tick_skipped_unreconciled")
            return

        decided_at = self._now()
        stale = events is None or (
            (decided_at - fetched_at).total_seconds() > config.stale_fetch_seconds
        )
        if stale and events is not None:
            state.event_log.add("Skipping entries: odds data is stale", "ERROR")
        signal_series = self._signal_series(config, events, failed_sports, failed_series)

        manager = OrderManager(
            client=self.kalshi,
            tracker=state.tracker,
            event_log=state.event_log,
            is_enabled=self._is_enabled,
            on_critical=self._on_critical,
            now=self._now,
        )
        strategy = StrategyEngine(
            order_mgr=manager, tracker=state.tracker, event_log=state.event_log
        )
        result.trading = True
        try:
            result.report = await strategy.run(
                joined,
                {m.ticker: m for m in markets},
                config,
                decided_at,
                data_stale=stale,
                signal_series=signal_series,
            )
        finally:
            self.orders_placed += manager.orders_placed

        report = result.report
        logger.info(
            "tick_complete",
            joined=len(joined),
            bought=len(report.bought),
            sold=len(report.sold),
            bailed_out=len(report.bailed_out),
            cancelled=len(report.cancelled),
        )

    # ── Fetches ──────────────────────────────────────────────────

    async def _fetch_odds(
        self, state: EngineState, config: BotConfig
    ) -> tuple[Optional[list[OddsEvent]], list[str]]:
        """Odds for the selected sports plus the sports whose request failed.

        Events are None when nothing could be read at all.
        """
        try:
            snapshot = await self.odds.fetch_events(self.http, config.selected_sports)
        except DataUnavailable as exc:
            logger.warning("odds_unavailable", error=str(exc))
            state.event_log.add(f"Odds unavailable: {exc}", "ERROR")
            return None, list(config.selected_sports)
        state.odds_usage = snapshot.usage
        return snapshot.events, snapshot.failed_sports

    async def _fetch_markets(self, config: BotConfig) -> tuple[list[Market], set[str]]:
        markets: dict[str, Market] = {}
        failed: set[str] = set()
        for sport in config.selected_sports:
            series = self.matcher.series_for(sport)
            if series is None:
                logger.debug("sport_without_series", sport=sport)
                continue
            try:
                batch = await self.kalshi.get_markets(series_ticker=series)
            except DataUnavailable as exc:
                logger.warning("markets_unavailable", series=series, error=str(exc))
                failed.add(series)
                continue
            for market in batch:
                markets[market.ticker] = market
        return list(markets.values()), failed

    def _signal_series(
        self,
        config: BotConfig,
        events: Optional[list[OddsEvent]],
        failed_sports: list[str],
        failed_series: set[str],
    ) -> set[str]:
        """Series whose odds and markets were both read this tick."""
        if events is None:
            return set()
        covered: set[str] = set()
        for sport in config.selected_sports:
            series = self.matcher.series_for(sport)
            if series is None or sport in failed_sports or series in failed_series:
                continue
            covered.add(series)
        return covered

    async def _fetch_portfolio(
        self, state: EngineState
    ) -> tuple[Optional[list[Position]], Optional[list[Order]]]:
        """Positions and resting orders; None for whichever poll failed."""
        positions: Optional[list[Position]]
        orders: Optional[list[Order]]
        try:
            positions = await self.kalshi.get_positions()
        except DataUnavailable as exc:
            logger.warning("positions_unavailable", error=str(exc))
            positions = None
        try:
            orders = await self.kalshi.get_orders(status="resting")
        except DataUnavailable as exc:
            logger.warning("orders_unavailable", error=str(exc))
            orders = None
        try:
            state.balance_cents = await self.kalshi.get_balance()
        except DataUnavailable as exc:
            logger.debug("balance_unavailable", error=str(exc))
        return positions, orders
