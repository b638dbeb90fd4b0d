"""Join odds-source events to Kalshi game tickers.

Kalshi game markets follow ``SERIES-YYMONDD<TEAM CODES>-<WINNER>``, e.g.
``KXNBAGAME-26JAN19LACWAS-LAC`` ("LAC beats WAS on 19 Jan 2026"). An odds
event joins a ticker when the series matches its sport, the date segment
starts with the event's local game date, both team codes appear in the
segment and the winner suffix names one of the two teams. The fair value
attached to the ticker is that winner's vig-free probability.

Matching is deliberately strict: anything that does not line up exactly
is left out (a missed trade is preferred over a wrong-market trade).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

import structlog

from kalshi_edge.exceptions import MatchingAmbiguous
from kalshi_edge.matching.normalizer import TeamNormalizer
from kalshi_edge.models import JoinedMarket, Market, OddsEvent
from kalshi_edge.pricing.odds import OddsAggregator, Selector

logger = structlog.get_logger()

# Odds API sport key -> Kalshi series ticker
SPORT_SERIES: dict[str, str] = {
    "americanfootball_nfl": "KXNFLGAME",
    "basketball_nba": "KXNBAGAME",
    "baseball_mlb": "KXMLBGAME",
    "icehockey_nhl": "KXNHLGAME",
    "americanfootball_ncaaf": "KXNCAAF",
    "basketball_ncaab": "KXNCAAMBGAME",
    "cricket_test_match": "KXCRICKETTESTMATCH",
}

TRADABLE_STATUSES = frozenset({"active", "open", "initialized", ""})

MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN",
          "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

EXCHANGE_TZ = ZoneInfo("America/New_York")


def ticker_date(dt: datetime, tz: ZoneInfo = EXCHANGE_TZ) -> str:
    """Date segment used in Kalshi tickers, e.g. ``26JAN19``."""
    local = (dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)).astimezone(tz)
    return f"{local.year % 100:02d}{MONTHS[local.month - 1]}{local.day:02d}"


@dataclass(frozen=True, slots=True)
class ParsedTicker:
    series: str
    game_segment: str
    winner: str


def parse_ticker(ticker: str) -> Optional[ParsedTicker]:
    parts = ticker.strip().upper().split("-")
    if len(parts) < 3 or not all(parts):
        return None
    return ParsedTicker(series=parts[0], game_segment=parts[1], winner=parts[-1])


@dataclass(slots=True)
class _Candidate:
    event: OddsEvent
    selector: Selector
    team: str


class MarketMatcher:
    """Best-effort correlation of odds events with exchange tickers."""

    def __init__(
        self,
        normalizer: Optional[TeamNormalizer] = None,
        sport_series: Optional[dict[str, str]] = None,
        tz: ZoneInfo = EXCHANGE_TZ,
    ) -> None:
        self._normalizer = normalizer or TeamNormalizer()
        self._sport_series = sport_series or SPORT_SERIES
        self._tz = tz

    def series_for(self, sport_key: str) -> Optional[str]:
        return self._sport_series.get(sport_key)

    def join(
        self,
        odds_events: Iterable[OddsEvent],
        markets: Iterable[Market],
        aggregator: OddsAggregator,
    ) -> list[JoinedMarket]:
        """One JoinedMarket per matched ticker.

        ``aggregator`` must already have observed the events this tick;
        events it has no fair value for are treated as unmatched.
        """
        events = list(odds_events)
        joined: dict[str, JoinedMarket] = {}

        for market in markets:
            if market.ticker in joined:
                continue
            if market.status not in TRADABLE_STATUSES:
                continue
            try:
                candidate = self._resolve(market, events)
            except MatchingAmbiguous as exc:
                logger.warning("market_match_ambiguous", ticker=market.ticker, error=str(exc))
                continue
            if candidate is None:
                continue

            event = candidate.event
            fair_value = aggregator.latest(event.event_id, candidate.selector)
            if fair_value is None:
                continue
            joined[market.ticker] = JoinedMarket(
                ticker=market.ticker,
                fair_value_cents=fair_value,
                volatility=aggregator.volatility(event.event_id, candidate.selector),
                yes_bid=market.yes_bid,
                yes_ask=market.yes_ask,
                event_label=event.label,
                sport_key=event.sport_key,
                team=candidate.team,
                odds_time=event.last_update,
                volume=market.volume,
            )

        return list(joined.values())

    def match_market(
        self, market: Market, odds_events: Iterable[OddsEvent]
    ) -> Optional[tuple[OddsEvent, Selector]]:
        """The (event, side) pricing ``market``, or None."""
        candidate = self._resolve(market, list(odds_events))
        if candidate is None:
            return None
        return candidate.event, candidate.selector

    def _resolve(
        self, market: Market, events: list[OddsEvent]
    ) -> Optional[_Candidate]:
        parsed = parse_ticker(market.ticker)
        if parsed is None:
            return None

        candidates = [
            c for c in (self._candidate(parsed, e) for e in events) if c is not None
        ]
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        # Most recently updated bookmaker quote wins
        def _stamp(c: _Candidate) -> datetime:
            return c.event.last_update or datetime.min.replace(tzinfo=timezone.utc)

        candidates.sort(key=_stamp, reverse=True)
        best, runner_up = candidates[0], candidates[1]
        if (
            _stamp(best) == _stamp(runner_up)
            and best.event.event_id != runner_up.event.event_id
        ):
            raise MatchingAmbiguous(
                f"{market.ticker}: events {best.event.event_id} and "
                f"{runner_up.event.event_id} updated at the same time"
            )
        return best

    def _candidate(self, parsed: ParsedTicker, event: OddsEvent) -> Optional[_Candidate]:
        series = self._sport_series.get(event.sport_key)
        if series is None or parsed.series != series:
            return None
        if event.commence_time is None:
            return None

        date_part = ticker_date(event.commence_time, self._tz)
        if not parsed.game_segment.startswith(date_part):
            return None
        team_codes = parsed.game_segment[len(date_part):]

        home_abbr = self._normalizer.abbreviation(event.home_team)
        away_abbr = self._normalizer.abbreviation(event.away_team)
        if not home_abbr or not away_abbr or home_abbr == away_abbr:
            return None
        if team_codes not in (home_abbr + away_abbr, away_abbr + home_abbr):
            return None

        if parsed.winner == home_abbr:
            return _Candidate(event=event, selector="home", team=event.home_team)
        if parsed.winner == away_abbr:
            return _Candidate(event=event, selector="away", team=event.away_team)
        return None
