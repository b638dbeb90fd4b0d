"""Per-tick entry / hold / close / bail-out decisions.

Decisions are pure functions over integer cents. ``StrategyEngine.run``
turns them into order actions for one tick: exits for every held
position first, then entries and resting-bid maintenance for every
joined market. Each ticker is decided independently; at most one BUY
and one SELL per ticker are submitted in a tick.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from kalshi_edge.engine.config import BotConfig
from kalshi_edge.engine.event_log import EventLog
from kalshi_edge.engine.order_manager import OrderManager
from kalshi_edge.engine.tracker import PositionTracker
from kalshi_edge.matching.market_matcher import parse_ticker
from kalshi_edge.models import (
    JoinedMarket,
    Market,
    Order,
    Position,
    TradeHistoryEntry,
)
from kalshi_edge.pricing.fees import break_even_sell_price
from kalshi_edge.pricing.odds import round_half_up

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class EntryDecision:
    ticker: str
    should_buy: bool
    smart_bid: int = 0
    max_willing_to_pay: int = 0
    effective_margin: float = 0.0
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ExitDecision:
    ticker: str
    should_sell: bool
    price: int = 0
    target: int = 0
    reason: str = ""


@dataclass(slots=True)
class TickReport:
    bought: list[str] = field(default_factory=list)
    sold: list[str] = field(default_factory=list)
    bailed_out: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


# ── Pure decisions ──────────────────────────────────────────────────


def entry_prices(
    fair_value_cents: int,
    yes_bid: int,
    bid_margin_percent: float,
    volatility: float,
) -> tuple[int, int, float]:
    """(smart_bid, max_willing_to_pay, effective_margin) for one market."""
    effective_margin = bid_margin_percent + volatility
    max_pay = round_half_up(fair_value_cents * (1 - effective_margin / 100))
    smart_bid = min(yes_bid + 1, max_pay, 99)
    return smart_bid, max_pay, effective_margin


def entry_decision(
    market: JoinedMarket,
    config: BotConfig,
    open_count: int,
    held: bool = False,
    data_stale: bool = False,
) -> EntryDecision:
    smart_bid, max_pay, margin = entry_prices(
        market.fair_value_cents,
        market.yes_bid,
        config.bid_margin_percent,
        market.volatility,
    )

    def _skip(reason: str) -> EntryDecision:
        return EntryDecision(market.ticker, False, smart_bid, max_pay, margin, reason)

    if held:
        return _skip("held")
    if not config.is_auto_bid:
        return _skip("auto_bid_off")
    if data_stale:
        return _skip("stale_data")
    if market.fair_value_cents < config.min_fair_value:
        return _skip("below_min_fair_value")
    if config.enable_liquidity_checks:
        if market.volume < config.min_volume:
            return _skip("low_volume")
        spread = (
            market.yes_ask - market.yes_bid
            if market.yes_ask > 0 and market.yes_bid > 0
            else None
        )
        if spread is None or spread > config.max_bid_ask_spread:
            return _skip("wide_spread")
    if open_count >= config.max_positions:
        return _skip("max_positions")
    if smart_bid <= 0 or smart_bid > max_pay:
        return _skip("no_edge")
    return EntryDecision(market.ticker, True, smart_bid, max_pay, margin, "smart_bid")


def exit_bid(position: Position, yes_bid: int, yes_ask: int) -> int:
    """Best price the held side can be sold into right now."""
    if position.side == "no":
        return 100 - yes_ask if 0 < yes_ask < 100 else 0
    return yes_bid


def auto_close_decision(
    position: Position,
    bid: int,
    volatility: float,
    config: BotConfig,
) -> ExitDecision:
    """Sell at the bid once it reaches a markup over the cost basis."""
    if not config.is_auto_close:
        return ExitDecision(position.ticker, False, reason="auto_close_off")
    if position.avg_price_cents <= 0:
        return ExitDecision(position.ticker, False, reason="no_cost_basis")

    effective_margin = config.auto_close_margin_percent + volatility
    target = round_half_up(position.avg_price_cents * (1 + effective_margin / 100))
    if config.fee_aware_close and position.total_cost_cents > 0:
        target = max(
            target,
            break_even_sell_price(position.total_cost_cents, position.contract_count),
        )
    target = min(target, 99)

    if bid > 0 and bid >= target:
        return ExitDecision(position.ticker, True, price=bid, target=target, reason="auto_close")
    return ExitDecision(position.ticker, False, price=bid, target=target, reason="below_target")


def bailout_decision(
    position: Position,
    entry: Optional[TradeHistoryEntry],
    bid: int,
    now: datetime,
    config: BotConfig,
) -> ExitDecision:
    """Stop-loss override for stale, underwater positions.

    Fires when the entry is older than the trigger window and the loss of
    the bid against the cost basis exceeds the trigger percent. Positions
    with no ledger entry have no entry age and never bail out.
    """
    bailout = config.bailout
    if not bailout.enabled:
        return ExitDecision(position.ticker, False, reason="bailout_off")
    if entry is None:
        return ExitDecision(position.ticker, False, reason="no_entry")
    if position.avg_price_cents <= 0:
        return ExitDecision(position.ticker, False, reason="no_cost_basis")

    age_hours = (now - entry.order_placed_at).total_seconds() / 3600
    if age_hours <= bailout.trigger_window_hours:
        return ExitDecision(position.ticker, False, price=bid, reason="within_window")

    loss_percent = round_half_up(
        (position.avg_price_cents - bid) / position.avg_price_cents * 100
    )
    if loss_percent <= bailout.loss_trigger_percent:
        return ExitDecision(position.ticker, False, price=bid, reason="loss_below_trigger")
    if bid <= 0:
        return ExitDecision(position.ticker, False, price=0, reason="no_bid")
    return ExitDecision(position.ticker, True, price=bid, reason="bailout")


# ── Tick execution ──────────────────────────────────────────────────


class StrategyEngine:
    """Runs the decision pass for one tick against the order manager."""

    def __init__(
        self,
        *,
        order_mgr: OrderManager,
        tracker: PositionTracker,
        event_log: EventLog,
    ) -> None:
        self.order_mgr = order_mgr
        self.tracker = tracker
        self.event_log = event_log

    async def run(
        self,
        joined: list[JoinedMarket],
        markets_by_ticker: dict[str, Market],
        config: BotConfig,
        now: datetime,
        data_stale: bool = False,
        signal_series: Optional[set[str]] = None,
    ) -> TickReport:
        report = TickReport()
        await self.run_exits(joined, markets_by_ticker, config, now, report)
        await self.run_entries(
            joined, config, now, data_stale, report, signal_series=signal_series
        )
        return report

    # ── Exits ────────────────────────────────────────────────────

    async def run_exits(
        self,
        joined: list[JoinedMarket],
        markets_by_ticker: dict[str, Market],
        config: BotConfig,
        now: datetime,
        report: TickReport,
    ) -> None:
        joined_by_ticker = {j.ticker: j for j in joined}
        sells_by_ticker = self._engine_orders_by_ticker(action="sell")
        # Unattributed resting sells (manual, or from before a restart)
        # already cover the position
        closing = {
            o.ticker
            for o in self.tracker.current_resting_orders()
            if o.action == "sell" and not self.tracker.is_engine_order(o)
        }

        for position in self.tracker.open_positions():
            ticker = position.ticker
            if ticker in closing:
                logger.debug("exit_skipped_resting_sell", ticker=ticker)
                continue
            signal = joined_by_ticker.get(ticker)
            market = markets_by_ticker.get(ticker)
            if signal is not None:
                yes_bid, yes_ask, volatility = signal.yes_bid, signal.yes_ask, signal.volatility
            elif market is not None:
                # Odds stopped publishing: exits still run on exchange data alone
                yes_bid, yes_ask, volatility = market.yes_bid, market.yes_ask, 0.0
            else:
                logger.debug("exit_skipped_no_market", ticker=ticker)
                continue

            bid = exit_bid(position, yes_bid, yes_ask)
            entry = self.tracker.history_for(ticker)
            existing = sells_by_ticker.get(ticker, [])

            decision = bailout_decision(position, entry, bid, now, config)
            if decision.reason == "no_bid":
                self.event_log.add(f"BailOut Stuck: {ticker} (No Liq)", "ERROR")
            if not decision.should_sell:
                decision = auto_close_decision(position, bid, volatility, config)
            if not decision.should_sell:
                continue

            if decision.reason == "bailout":
                self.event_log.add(
                    f"BAILOUT TRIGGER: {ticker} bid {bid}¢ vs avg "
                    f"{position.avg_price_cents:.0f}¢",
                    "ERROR",
                )
            elif any(o.price_cents == decision.price for o in existing):
                continue

            for order in existing:
                if await self.order_mgr.cancel(order.order_id, ticker, "replace sell"):
                    report.cancelled.append(ticker)

            result = await self.order_mgr.place_sell(
                ticker,
                decision.price,
                position.contract_count,
                side=position.side,
                immediate=decision.reason == "bailout",
                reason=decision.reason,
            )
            if result is None:
                report.failed.append(ticker)
            elif decision.reason == "bailout":
                report.bailed_out.append(ticker)
            else:
                report.sold.append(ticker)

    # ── Entries ──────────────────────────────────────────────────

    async def run_entries(
        self,
        joined: list[JoinedMarket],
        config: BotConfig,
        now: datetime,
        data_stale: bool,
        report: TickReport,
        signal_series: Optional[set[str]] = None,
    ) -> None:
        """Place, reprice and cancel engine bids.

        ``signal_series`` names the series whose odds and markets were both
        read this tick; ``None`` means all of them. A bid whose series is
        missing keeps resting, since its signal is unknown rather than gone.
        """
        held = self.tracker.held_tickers()
        max_odds_age = config.max_odds_age_minutes * 60
        buys_by_ticker = self._engine_orders_by_ticker(action="buy")
        joined_tickers = {j.ticker for j in joined}

        # Resting engine bids whose market lost its fair-value signal
        for ticker, orders in buys_by_ticker.items():
            if ticker in joined_tickers or ticker in held:
                continue
            if signal_series is not None and _series(ticker) not in signal_series:
                continue
            for order in orders:
                if await self.order_mgr.cancel(order.order_id, ticker, "no signal"):
                    report.cancelled.append(ticker)

        max_reached = len(held) >= config.max_positions
        occupied = held | {t for t in buys_by_ticker if t in joined_tickers}
        attempted: set[str] = set()
        sport_of = {j.ticker: j.sport_key for j in joined if j.sport_key}
        per_sport = Counter(sport_of[t] for t in occupied if t in sport_of)

        # Highest edge first so the position cap goes to the best markets
        ranked = sorted(joined, key=lambda j: j.fair_value_cents - j.yes_bid, reverse=True)
        for market in ranked:
            ticker = market.ticker
            if ticker in attempted:
                continue
            attempted.add(ticker)

            existing = buys_by_ticker.get(ticker, [])
            if len(existing) > 1:
                for dup in existing[1:]:
                    if await self.order_mgr.cancel(dup.order_id, ticker, "duplicate"):
                        report.cancelled.append(ticker)
                existing = existing[:1]

            if ticker in held:
                for order in existing:
                    if await self.order_mgr.cancel(order.order_id, ticker, "already held"):
                        report.cancelled.append(ticker)
                continue

            if existing and max_reached:
                if await self.order_mgr.cancel(existing[0].order_id, ticker, "max positions"):
                    report.cancelled.append(ticker)
                    occupied.discard(ticker)
                continue

            odds_stale = (
                market.odds_time is not None
                and (now - market.odds_time).total_seconds() > max_odds_age
            )
            open_count = len(occupied - {ticker})
            decision = entry_decision(
                market, config, open_count, held=False, data_stale=data_stale or odds_stale
            )

            if existing:
                await self._maintain_bid(market, existing[0], decision, config, report)
                continue

            if not decision.should_buy:
                continue
            if config.enable_sport_diversification and market.sport_key:
                in_sport = per_sport[market.sport_key]
                if in_sport >= config.max_positions_per_sport:
                    logger.info(
                        "entry_skipped_sport_limit",
                        ticker=ticker,
                        sport=market.sport_key,
                        count=in_sport,
                    )
                    continue
            result = await self.order_mgr.place_buy(
                market, decision.smart_bid, config.trade_size, source="auto"
            )
            if result is None:
                report.failed.append(ticker)
                continue
            occupied.add(ticker)
            if market.sport_key:
                per_sport[market.sport_key] += 1
            report.bought.append(ticker)

    async def _maintain_bid(
        self,
        market: JoinedMarket,
        order: Order,
        decision: EntryDecision,
        config: BotConfig,
        report: TickReport,
    ) -> None:
        """Keep one engine bid per ticker priced at the current smart bid."""
        if decision.reason == "auto_bid_off":
            return
        if not decision.should_buy:
            if await self.order_mgr.cancel(order.order_id, market.ticker, decision.reason):
                report.cancelled.append(market.ticker)
            return
        if order.price_cents == decision.smart_bid:
            return

        self.event_log.add(
            f"Updating bid {market.ticker}: {order.price_cents}¢ -> {decision.smart_bid}¢",
            "UPDATE",
        )
        if not await self.order_mgr.cancel(order.order_id, market.ticker, "reprice"):
            return
        report.cancelled.append(market.ticker)
        result = await self.order_mgr.place_buy(
            market, decision.smart_bid, config.trade_size, source="auto"
        )
        if result is None:
            report.failed.append(market.ticker)
        else:
            report.bought.append(market.ticker)

    def _engine_orders_by_ticker(self, action: str) -> dict[str, list[Order]]:
        grouped: dict[str, list[Order]] = {}
        for order in self.tracker.engine_resting_orders():
            if order.action == action:
                grouped.setdefault(order.ticker, []).append(order)
        return grouped


def _series(ticker: str) -> str:
    parsed = parse_ticker(ticker)
    return parsed.series if parsed else ""
