from datetime import datetime, timezone

import pytest

from kalshi_edge.engine.stats import compute_stats, t_statistic
from kalshi_edge.models import SETTLED, Order, Position, TradeHistoryEntry


def make_settled(ticker: str, pnl: int) -> Position:
    return Position(
        ticker=ticker,
        contract_count=0,
        avg_price_cents=0.0,
        settlement_status=SETTLED,
        realized_pnl_cents=pnl,
    )


def make_entry(ticker: str, source: str = "auto") -> TradeHistoryEntry:
    return TradeHistoryEntry(
        ticker=ticker,
        event="A at B",
        source=source,
        fair_value_cents=58,
        bid_price_cents=42,
        order_placed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def test_exposure_counts_held_cost_and_resting_notional():
    held = Position(ticker="T-1", contract_count=10, avg_price_cents=40.0, total_cost_cents=400)
    order = Order(
        order_id="o-1", ticker="T-2", side="yes", action="buy", count=10,
        price_cents=30, status="resting", filled_count=4, remaining_count=6,
    )
    stats = compute_stats([held], [order], {})

    assert stats.exposure_cents == 400 + 180
    assert stats.potential_return_cents == 1000 - 400


def test_win_rate_only_counts_auto_trades():
    positions = [make_settled("A", 100), make_settled("B", -50), make_settled("C", 70)]
    ledger = {"A": make_entry("A"), "B": make_entry("B"), "C": make_entry("C", "manual")}

    stats = compute_stats(positions, [], ledger)

    assert stats.realized_pnl_cents == 120
    assert stats.history_count == 3
    assert stats.win_rate_percent == 50


def test_t_statistic_needs_five_samples():
    assert t_statistic([10.0, 20.0, 30.0, 40.0]) == 0.0
    assert t_statistic([10.0] * 5) == 0.0  # zero variance


def test_t_statistic_value():
    pnls = [10.0, 20.0, 30.0, 40.0, 50.0]
    # mean 30, sample stdev sqrt(250)
    assert t_statistic(pnls) == pytest.approx(30 / (250 ** 0.5 / 5 ** 0.5))


def test_significance_flag():
    positions = [make_settled(f"T{i}", pnl) for i, pnl in enumerate([90, 100, 110, 95, 105])]
    ledger = {p.ticker: make_entry(p.ticker) for p in positions}

    stats = compute_stats(positions, [], ledger)

    assert stats.win_rate_percent == 100
    assert stats.is_significant
