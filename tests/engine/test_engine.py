from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from kalshi_edge.engine.config import BotConfig
from kalshi_edge.engine.engine import EngineState, TradingEngine
from kalshi_edge.exceptions import AuthError, DataUnavailable
from kalshi_edge.feeds.odds_api import OddsApiSnapshot, OddsApiUsage
from kalshi_edge.models import Market, OddsEvent, Order, OrderResult, Position, Quote

NOW = datetime(2026, 1, 19, 20, 0, tzinfo=timezone.utc)
TICKER = "KXNBAGAME-26JAN19LACWAS-LAC"


def make_event() -> OddsEvent:
    return OddsEvent(
        event_id="evt-1",
        sport_key="basketball_nba",
        commence_time=datetime(2026, 1, 20, 0, 30, tzinfo=timezone.utc),
        home_team="Washington Wizards",
        away_team="Los Angeles Clippers",
        quotes=(
            Quote(
                bookmaker_key="book-a",
                last_update=NOW - timedelta(minutes=1),
                outcome_a_price=130,
                outcome_b_price=-150,
            ),
        ),
    )


def make_kalshi(markets=None, positions=None, orders=None) -> MagicMock:
    kalshi = MagicMock()
    kalshi.get_markets = AsyncMock(
        return_value=markets
        if markets is not None
        else [Market(ticker=TICKER, yes_bid=41, yes_ask=44, status="active", volume=500)]
    )
    kalshi.get_positions = AsyncMock(return_value=positions or [])
    kalshi.get_orders = AsyncMock(return_value=orders or [])
    kalshi.get_balance = AsyncMock(return_value=10_000)
    kalshi.place_order = AsyncMock(return_value=OrderResult(order_id="ord-1"))
    kalshi.cancel_order = AsyncMock(return_value=True)
    return kalshi


def make_odds(events=None, error=None) -> MagicMock:
    odds = MagicMock()
    if error is not None:
        odds.fetch_events = AsyncMock(side_effect=error)
    else:
        odds.fetch_events = AsyncMock(
            return_value=OddsApiSnapshot(
                events=events if events is not None else [make_event()],
                usage=OddsApiUsage(remaining=100),
            )
        )
    return odds


def make_state(**config) -> EngineState:
    base = {"is_auto_bid": True, "is_auto_close": True, "selected_sports": ["basketball_nba"]}
    base.update(config)
    return EngineState(config=BotConfig(**base))


def make_engine(kalshi, odds) -> TradingEngine:
    return TradingEngine(kalshi=kalshi, odds=odds, http=MagicMock(), now=lambda: NOW)


@pytest.mark.asyncio
async def test_tick_joins_and_bids():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    result = await engine.tick(state, trading_allowed=True)

    assert result.odds_ok
    assert result.joined == 1
    assert result.trading
    kalshi.get_markets.assert_awaited_once_with(series_ticker="KXNBAGAME")
    assert kalshi.place_order.await_args.kwargs["price_cents"] == 42
    assert state.joined[0].fair_value_cents == 58
    assert state.balance_cents == 10_000
    assert state.odds_usage.remaining == 100
    assert engine.orders_placed == 1


@pytest.mark.asyncio
async def test_display_only_tick_places_nothing():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    result = await engine.tick(state, trading_allowed=False)

    assert result.joined == 1
    assert not result.trading
    kalshi.place_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_odds_outage_blocks_entries_but_exits_still_run():
    held = Position(ticker=TICKER, contract_count=10, avg_price_cents=41.0, total_cost_cents=410)
    kalshi = make_kalshi(
        markets=[Market(ticker=TICKER, yes_bid=48, yes_ask=50, status="active")],
        positions=[held],
    )
    engine = make_engine(kalshi, make_odds(error=DataUnavailable("down")))
    state = make_state()

    result = await engine.tick(state, trading_allowed=True)

    assert not result.odds_ok
    assert result.joined == 0
    kwargs = kalshi.place_order.await_args.kwargs
    assert kwargs["action"] == "sell"
    assert kwargs["price_cents"] == 48
    assert kalshi.place_order.await_count == 1


@pytest.mark.asyncio
async def test_auth_failure_abandons_trading_for_the_tick():
    kalshi = make_kalshi()
    kalshi.get_positions = AsyncMock(side_effect=AuthError("HTTP 401"))
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    result = await engine.tick(state, trading_allowed=True)

    assert result.error == "HTTP 401"
    kalshi.place_order.assert_not_awaited()
    assert state.event_log.entries("ERROR")


@pytest.mark.asyncio
async def test_no_trading_before_first_reconcile():
    kalshi = make_kalshi()
    kalshi.get_positions = AsyncMock(side_effect=DataUnavailable("500"))
    kalshi.get_orders = AsyncMock(side_effect=DataUnavailable("500"))
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    result = await engine.tick(state, trading_allowed=True)

    assert not result.reconciled
    kalshi.place_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_gate_is_consulted_before_submitting():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    engine.set_gate(lambda: False)

    await engine.tick(make_state(), trading_allowed=True)

    kalshi.place_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_sport_without_series_is_skipped():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds(events=[]))
    state = make_state(selected_sports=["soccer_epl"])

    result = await engine.tick(state, trading_allowed=True)

    kalshi.get_markets.assert_not_awaited()
    assert result.markets_fetched == 0


@pytest.mark.asyncio
async def test_fair_value_history_accumulates_across_ticks():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state(is_auto_bid=False)

    await engine.tick(state, trading_allowed=True)
    await engine.tick(state, trading_allowed=True)

    assert len(state.aggregator.history("evt-1", "away")) == 2


def resting_bid(order_id: str = "ord-1", price: int = 42) -> Order:
    return Order(
        order_id=order_id,
        ticker=TICKER,
        side="yes",
        action="buy",
        count=10,
        price_cents=price,
        status="resting",
        remaining_count=10,
    )


@pytest.mark.asyncio
async def test_odds_outage_keeps_resting_bid():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    await engine.tick(state, trading_allowed=True)
    assert kalshi.place_order.await_count == 1

    kalshi.get_orders = AsyncMock(return_value=[resting_bid()])
    engine.odds = make_odds(error=DataUnavailable("down"))
    result = await engine.tick(state, trading_allowed=True)

    assert not result.odds_ok
    kalshi.cancel_order.assert_not_awaited()
    assert kalshi.place_order.await_count == 1


@pytest.mark.asyncio
async def test_market_fetch_failure_keeps_resting_bid():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    await engine.tick(state, trading_allowed=True)

    kalshi.get_orders = AsyncMock(return_value=[resting_bid()])
    kalshi.get_markets = AsyncMock(side_effect=DataUnavailable("502"))
    result = await engine.tick(state, trading_allowed=True)

    assert result.odds_ok
    assert result.joined == 0
    kalshi.cancel_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_sport_keeps_resting_bid():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    await engine.tick(state, trading_allowed=True)

    kalshi.get_orders = AsyncMock(return_value=[resting_bid()])
    odds = MagicMock()
    odds.fetch_events = AsyncMock(
        return_value=OddsApiSnapshot(
            events=[], usage=OddsApiUsage(remaining=99), failed_sports=["basketball_nba"]
        )
    )
    engine.odds = odds
    await engine.tick(state, trading_allowed=True)

    kalshi.cancel_order.assert_not_awaited()


@pytest.mark.asyncio
async def test_bid_cancelled_when_event_no_longer_published():
    kalshi = make_kalshi()
    engine = make_engine(kalshi, make_odds())
    state = make_state()

    await engine.tick(state, trading_allowed=True)

    kalshi.get_orders = AsyncMock(return_value=[resting_bid()])
    engine.odds = make_odds(events=[])
    await engine.tick(state, trading_allowed=True)

    kalshi.cancel_order.assert_awaited_once()
