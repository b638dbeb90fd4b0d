"""The Odds API client for consensus fair-value construction.

Transforms The Odds API payload into ``OddsEvent`` values carrying one
two-way ``Quote`` per bookmaker, in American odds, ready for the
aggregator and the market matcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from kalshi_edge.exceptions import DataUnavailable
from kalshi_edge.matching.normalizer import TeamNormalizer
from kalshi_edge.models import OddsEvent, Quote
from kalshi_edge.utils.parsing import parse_datetime, to_float

logger = structlog.get_logger()

ODDS_API_BASE = "https://api.the-odds-api.com/v4"


@dataclass(slots=True)
class OddsApiUsage:
    remaining: Optional[int] = None
    used: Optional[int] = None
    last: Optional[int] = None


@dataclass(slots=True)
class OddsApiSnapshot:
    events: list[OddsEvent]
    usage: OddsApiUsage
    failed_sports: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Sport:
    key: str
    title: str
    active: bool


class OddsApiClient:
    """Fetches h2h odds and normalizes them for the aggregator."""

    def __init__(
        self,
        api_key: str,
        base_url: str = ODDS_API_BASE,
        regions: str = "us",
        markets: str = "h2h",
        normalizer: Optional[TeamNormalizer] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.regions = regions
        self.markets = markets
        self._normalizer = normalizer or TeamNormalizer()

    async def fetch_sports(self, client: httpx.AsyncClient) -> list[Sport]:
        try:
            response = await client.get(
                f"{self.base_url}/sports", params={"apiKey": self.api_key}
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DataUnavailable(f"odds sports listing failed: {exc}") from exc

        if not isinstance(payload, list):
            return []
        return [
            Sport(
                key=str(row.get("key", "")),
                title=str(row.get("title", "")),
                active=bool(row.get("active", False)),
            )
            for row in payload
            if isinstance(row, dict) and row.get("key")
        ]

    async def fetch_events(
        self,
        client: httpx.AsyncClient,
        sports: list[str],
    ) -> OddsApiSnapshot:
        """Fetch odds for each sport.

        A sport that fails is logged and skipped. When every sport fails,
        ``DataUnavailable`` is raised so the caller can tell "no data" from
        "no events".
        """
        if not self.api_key:
            raise DataUnavailable("ODDS_API_KEY not configured")

        events: dict[str, OddsEvent] = {}
        usage = OddsApiUsage()
        failed: list[str] = []

        for sport in sports:
            endpoint = f"{self.base_url}/sports/{sport}/odds"
            params = {
                "apiKey": self.api_key,
                "regions": self.regions,
                "markets": self.markets,
                "oddsFormat": "american",
                "dateFormat": "iso",
            }
            try:
                response = await client.get(endpoint, params=params)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("odds_api_fetch_error", sport=sport, error=str(exc))
                failed.append(sport)
                continue

            usage = self._parse_usage_headers(response.headers)
            if not isinstance(payload, list):
                continue

            for row in payload:
                if not isinstance(row, dict):
                    continue
                parsed = self.parse_event_row(row=row, sport=sport)
                if parsed is not None:
                    events[parsed.event_id] = parsed

        if sports and len(failed) == len(sports):
            raise DataUnavailable(f"odds fetch failed for all sports: {failed}")

        logger.debug(
            "odds_api_snapshot",
            events=len(events),
            remaining=usage.remaining,
        )
        return OddsApiSnapshot(events=list(events.values()), usage=usage, failed_sports=failed)

    @staticmethod
    def _parse_usage_headers(headers: httpx.Headers) -> OddsApiUsage:
        def _to_int(value: Optional[str]) -> Optional[int]:
            if value is None:
                return None
            try:
                return int(float(value))
            except ValueError:
                return None

        return OddsApiUsage(
            remaining=_to_int(headers.get("x-requests-remaining")),
            used=_to_int(headers.get("x-requests-used")),
            last=_to_int(headers.get("x-requests-last")),
        )

    def parse_event_row(self, row: dict[str, Any], sport: str) -> Optional[OddsEvent]:
        home_team = str(row.get("home_team", "")).strip()
        away_team = str(row.get("away_team", "")).strip()
        if not home_team or not away_team:
            return None

        raw_event_id = str(row.get("id", "")).strip()
        event_id = raw_event_id or f"{sport}:{home_team}:{away_team}"

        quotes: list[Quote] = []
        bookmakers = row.get("bookmakers", [])
        if not isinstance(bookmakers, list):
            bookmakers = []

        for bookmaker in bookmakers:
            if not isinstance(bookmaker, dict):
                continue
            quote = self._extract_h2h_quote(bookmaker, home_team, away_team)
            if quote is not None:
                quotes.append(quote)

        return OddsEvent(
            event_id=event_id,
            sport_key=str(row.get("sport_key") or sport),
            commence_time=parse_datetime(row.get("commence_time")),
            home_team=home_team,
            away_team=away_team,
            quotes=tuple(quotes),
        )

    def _extract_h2h_quote(
        self,
        bookmaker: dict[str, Any],
        home_team: str,
        away_team: str,
    ) -> Optional[Quote]:
        markets = bookmaker.get("markets", [])
        if not isinstance(markets, list):
            return None

        home_norm = self._normalizer.normalize(home_team)
        away_norm = self._normalizer.normalize(away_team)

        for market in markets:
            if str(market.get("key", "")).lower().strip() != "h2h":
                continue
            outcomes = market.get("outcomes", [])
            if not isinstance(outcomes, list):
                continue

            prices: dict[str, float] = {}
            for outcome in outcomes:
                name = self._normalizer.normalize(str(outcome.get("name", "")))
                price = to_float(outcome.get("price"))
                if price is None:
                    continue
                if name == home_norm:
                    prices.setdefault("home", price)
                elif name == away_norm:
                    prices.setdefault("away", price)

            # Three-way markets (draws) are not two-outcome contracts
            if len(outcomes) != 2 or "home" not in prices or "away" not in prices:
                continue

            return Quote(
                bookmaker_key=str(bookmaker.get("key", "")),
                last_update=parse_datetime(
                    market.get("last_update") or bookmaker.get("last_update")
                ),
                outcome_a_price=prices["home"],
                outcome_b_price=prices["away"],
            )
        return None
