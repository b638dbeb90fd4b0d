"""Internal data model shared by feeds, matcher, tracker and strategy.

Boundary clients translate raw API payloads into these types on
ingestion; nothing past the feeds layer touches raw JSON.

Prices are integer cents (0-100) and timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

SETTLED = "settled"
UNSETTLED = "unsettled"

RESTING_STATUSES = frozenset({"resting", "active", "pending", "bidding"})


@dataclass(frozen=True, slots=True)
class Quote:
    """One bookmaker's two-way price for an event (A = home, B = away)."""

    bookmaker_key: str
    last_update: Optional[datetime]
    outcome_a_price: float
    outcome_b_price: float


@dataclass(frozen=True, slots=True)
class OddsEvent:
    event_id: str
    sport_key: str
    commence_time: Optional[datetime]
    home_team: str
    away_team: str
    quotes: tuple[Quote, ...] = ()

    @property
    def last_update(self) -> Optional[datetime]:
        """Most recent bookmaker update across all quotes."""
        stamps = [q.last_update for q in self.quotes if q.last_update is not None]
        return max(stamps) if stamps else None

    @property
    def label(self) -> str:
        return f"{self.away_team} at {self.home_team}"


@dataclass(frozen=True, slots=True)
class FairValueSample:
    event_id: str
    timestamp: datetime
    probability: float


@dataclass(slots=True)
class Market:
    """Exchange-side tradable instrument, replaced wholesale on each poll."""

    ticker: str
    event_ticker: str = ""
    yes_bid: int = 0
    yes_ask: int = 0
    volume: int = 0
    open_interest: int = 0
    status: str = ""
    title: str = ""
    close_time: Optional[datetime] = None

    @property
    def spread(self) -> Optional[int]:
        if self.yes_bid <= 0 or self.yes_ask <= 0:
            return None
        return self.yes_ask - self.yes_bid


@dataclass(frozen=True, slots=True)
class JoinedMarket:
    """An exchange ticker joined to the odds event that prices it."""

    ticker: str
    fair_value_cents: int
    volatility: float
    yes_bid: int
    yes_ask: int
    event_label: str = ""
    sport_key: str = ""
    team: str = ""
    odds_time: Optional[datetime] = None
    volume: int = 0


@dataclass(frozen=True, slots=True)
class TradeHistoryEntry:
    ticker: str
    event: str
    source: str  # "auto" or "manual"
    fair_value_cents: int
    bid_price_cents: int
    order_placed_at: datetime
    odds_time: Optional[datetime] = None
    order_id: str = ""


@dataclass(slots=True)
class Position:
    ticker: str
    contract_count: int
    avg_price_cents: float
    total_cost_cents: int = 0
    fees_paid_cents: int = 0
    settlement_status: str = UNSETTLED
    realized_pnl_cents: int = 0
    side: str = "yes"

    @property
    def is_open(self) -> bool:
        return self.contract_count > 0 and self.settlement_status != SETTLED


@dataclass(slots=True)
class Order:
    order_id: str
    ticker: str
    side: str  # "yes" or "no"
    action: str  # "buy" or "sell"
    count: int
    price_cents: int
    status: str  # "resting", "filled" or "canceled"
    filled_count: int = 0
    remaining_count: int = 0
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_resting(self) -> bool:
        return self.status.lower() in RESTING_STATUSES


@dataclass(slots=True)
class OrderResult:
    """Result from a place_order call."""

    order_id: str
    status: str = "placed"  # "placed", "filled", "error"
    filled_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "error" and bool(self.order_id)


@dataclass(slots=True)
class PortfolioSnapshot:
    """Positions and orders read in one portfolio poll."""

    positions: list[Position] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    balance_cents: Optional[int] = None
