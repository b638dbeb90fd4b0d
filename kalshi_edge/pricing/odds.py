"""Consensus fair value from multi-bookmaker American odds.

Each bookmaker quote is converted to implied probabilities, the vig is
removed by normalizing the two sides to sum to one, and the vig-free
probabilities are averaged across bookmakers. A short FIFO history of
fair values per event yields a volatility measure in percentage points.
"""

from __future__ import annotations

import math
from collections import deque
from datetime import datetime, timezone
from statistics import fmean, pstdev
from typing import Iterable, Literal, Optional

import structlog

from kalshi_edge.exceptions import NoData
from kalshi_edge.models import FairValueSample, OddsEvent, Quote

logger = structlog.get_logger()

Selector = Literal["home", "away"]

DEFAULT_VOLATILITY_WINDOW = 10


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def american_to_probability(odds: float) -> Optional[float]:
    """Implied probability of American odds, or None when malformed.

    Valid American odds are <= -100 or >= +100; anything in between
    (including zero) or non-finite is rejected.
    """
    try:
        odds = float(odds)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(odds) or -100 < odds < 100:
        return None
    if odds < 0:
        return -odds / (-odds + 100)
    return 100 / (odds + 100)


def probability_to_american(probability: float) -> int:
    """Inverse of :func:`american_to_probability`, 0 for degenerate input."""
    if probability <= 0 or probability >= 1:
        return 0
    if probability >= 0.5:
        return round_half_up(-(probability / (1 - probability)) * 100)
    return round_half_up(((1 - probability) / probability) * 100)


def devig(odds_a: float, odds_b: float) -> Optional[tuple[float, float]]:
    """Vig-free probabilities for a two-way market, or None when malformed."""
    implied_a = american_to_probability(odds_a)
    implied_b = american_to_probability(odds_b)
    if implied_a is None or implied_b is None:
        return None
    total = implied_a + implied_b
    if total <= 0:
        return None
    return implied_a / total, implied_b / total


def _quote_probability(quote: Quote, selector: Selector) -> Optional[float]:
    pair = devig(quote.outcome_a_price, quote.outcome_b_price)
    if pair is None:
        return None
    return pair[0] if selector == "home" else pair[1]


def fair_value_probability(event: OddsEvent, selector: Selector) -> float:
    """Mean vig-free probability across the event's usable quotes.

    Raises:
        NoData: when the event has no quotes or none survive validation.
    """
    if selector not in ("home", "away"):
        raise ValueError(f"selector must be 'home' or 'away', got {selector!r}")
    probabilities = [
        p for p in (_quote_probability(q, selector) for q in event.quotes)
        if p is not None
    ]
    if not probabilities:
        raise NoData(f"no usable quotes for event {event.event_id}")
    dropped = len(event.quotes) - len(probabilities)
    if dropped:
        logger.debug("odds_quotes_dropped", event_id=event.event_id, dropped=dropped)
    return fmean(probabilities)


def compute_fair_value(event: OddsEvent, selector: Selector) -> int:
    """Fair value of the selected side in integer cents (0-100)."""
    probability = fair_value_probability(event, selector)
    return max(0, min(100, round_half_up(probability * 100)))


def population_volatility(values: Iterable[float]) -> float:
    """Population standard deviation, 0 with fewer than two samples."""
    samples = list(values)
    if len(samples) < 2:
        return 0.0
    return pstdev(samples)


class OddsAggregator:
    """Fair value per event plus a bounded rolling history for volatility.

    History is keyed by ``(event_id, selector)`` so both sides of a game
    keep their own window. Samples are stored as probabilities in [0, 1];
    volatility is reported in percentage points.
    """

    def __init__(self, window: int = DEFAULT_VOLATILITY_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window
        self._history: dict[tuple[str, str], deque[FairValueSample]] = {}

    def observe(
        self,
        event: OddsEvent,
        selector: Selector,
        now: Optional[datetime] = None,
    ) -> int:
        """Compute fair value for one side and append it to the history."""
        probability = fair_value_probability(event, selector)
        sample = FairValueSample(
            event_id=event.event_id,
            timestamp=now or datetime.now(timezone.utc),
            probability=probability,
        )
        key = (event.event_id, selector)
        history = self._history.get(key)
        if history is None:
            history = deque(maxlen=self.window)
            self._history[key] = history
        history.append(sample)
        return max(0, min(100, round_half_up(probability * 100)))

    def observe_events(
        self,
        events: Iterable[OddsEvent],
        now: Optional[datetime] = None,
    ) -> int:
        """Observe both sides of every event; returns how many were priced.

        Events without usable quotes are skipped (no signal), not fatal.
        """
        priced = 0
        for event in events:
            try:
                self.observe(event, "home", now)
                self.observe(event, "away", now)
            except NoData:
                logger.debug("odds_event_no_data", event_id=event.event_id)
                continue
            priced += 1
        return priced

    def latest(self, event_id: str, selector: Selector) -> Optional[int]:
        """Most recent fair value in cents, or None if never observed."""
        history = self._history.get((event_id, selector))
        if not history:
            return None
        return max(0, min(100, round_half_up(history[-1].probability * 100)))

    def history(self, event_id: str, selector: Selector = "home") -> list[FairValueSample]:
        return list(self._history.get((event_id, selector), ()))

    def volatility(self, event_id: str, selector: Selector = "home") -> float:
        samples = self._history.get((event_id, selector), ())
        return population_volatility(s.probability * 100 for s in samples)

    def forget(self, live_event_ids: set[str]) -> None:
        """Drop histories for events no longer published by the odds source."""
        stale = [key for key in self._history if key[0] not in live_event_ids]
        for key in stale:
            del self._history[key]
