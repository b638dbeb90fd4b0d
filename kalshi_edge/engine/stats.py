"""Portfolio statistics over tracker state and the trade-history ledger."""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Mapping

from kalshi_edge.models import SETTLED, Order, Position, TradeHistoryEntry

# Minimum settled auto trades before a t-statistic is reported
MIN_TSTAT_SAMPLES = 5
SIGNIFICANCE_THRESHOLD = 2.0


@dataclass(frozen=True, slots=True)
class PortfolioStats:
    exposure_cents: int
    realized_pnl_cents: int
    potential_return_cents: int
    win_rate_percent: int
    t_stat: float
    is_significant: bool
    history_count: int


def t_statistic(pnls: list[float]) -> float:
    """One-sample t-statistic of mean PnL against zero."""
    if len(pnls) < MIN_TSTAT_SAMPLES:
        return 0.0
    stdev = statistics.stdev(pnls)
    if stdev <= 0:
        return 0.0
    return statistics.fmean(pnls) / (stdev / math.sqrt(len(pnls)))


def compute_stats(
    positions: list[Position],
    resting_orders: list[Order],
    ledger: Mapping[str, TradeHistoryEntry],
) -> PortfolioStats:
    exposure = 0
    potential = 0
    realized = 0
    history_count = 0
    auto_pnls: list[float] = []

    for order in resting_orders:
        remaining = order.remaining_count or max(order.count - order.filled_count, 0)
        exposure += order.price_cents * remaining

    for p in positions:
        if p.is_open:
            exposure += p.total_cost_cents
            potential += p.contract_count * 100 - p.total_cost_cents
        if p.settlement_status == SETTLED or p.realized_pnl_cents:
            realized += p.realized_pnl_cents
            history_count += 1
            entry = ledger.get(p.ticker)
            if entry is not None and entry.source == "auto":
                auto_pnls.append(float(p.realized_pnl_cents))

    wins = sum(1 for pnl in auto_pnls if pnl > 0)
    win_rate = math.floor(wins / len(auto_pnls) * 100 + 0.5) if auto_pnls else 0
    t_stat = t_statistic(auto_pnls)
    return PortfolioStats(
        exposure_cents=exposure,
        realized_pnl_cents=realized,
        potential_return_cents=potential,
        win_rate_percent=win_rate,
        t_stat=t_stat,
        is_significant=abs(t_stat) > SIGNIFICANCE_THRESHOLD,
        history_count=history_count,
    )
