import pytest
import httpx

from kalshi_edge.exceptions import DataUnavailable
from kalshi_edge.feeds.odds_api import OddsApiClient


def make_row(**overrides):
    row = {
        "id": "evt-123",
        "sport_key": "basketball_nba",
        "commence_time": "2026-01-20T00:30:00Z",
        "home_team": "Washington Wizards",
        "away_team": "Los Angeles Clippers",
        "bookmakers": [
            {
                "key": "draftkings",
                "last_update": "2026-01-19T18:00:00Z",
                "markets": [
                    {
                        "key": "h2h",
                        "last_update": "2026-01-19T18:01:00Z",
                        "outcomes": [
                            {"name": "Los Angeles Clippers", "price": -150},
                            {"name": "Washington Wizards", "price": 130},
                        ],
                    },
                    {
                        "key": "spreads",
                        "outcomes": [
                            {"name": "Los Angeles Clippers", "price": -110, "point": -3.5},
                            {"name": "Washington Wizards", "price": -110, "point": 3.5},
                        ],
                    },
                ],
            },
            {
                "key": "fanduel",
                "last_update": "2026-01-19T18:05:00Z",
                "markets": [
                    {
                        "key": "h2h",
                        "outcomes": [
                            {"name": "Washington Wizards", "price": 125},
                            {"name": "Los Angeles Clippers", "price": -145},
                        ],
                    }
                ],
            },
        ],
    }
    row.update(overrides)
    return row


def test_parse_event_row_builds_one_quote_per_bookmaker():
    client = OddsApiClient(api_key="test-key")
    event = client.parse_event_row(row=make_row(), sport="basketball_nba")

    assert event is not None
    assert event.event_id == "evt-123"
    assert event.home_team == "Washington Wizards"
    assert event.away_team == "Los Angeles Clippers"
    assert len(event.quotes) == 2

    dk, fd = event.quotes
    # outcome A is always the home team regardless of payload order
    assert dk.outcome_a_price == 130
    assert dk.outcome_b_price == -150
    assert fd.outcome_a_price == 125
    assert fd.outcome_b_price == -145
    assert event.last_update.isoformat() == "2026-01-19T18:05:00+00:00"


def test_three_way_markets_are_ignored():
    row = make_row(
        bookmakers=[
            {
                "key": "book-a",
                "markets": [
                    {
                        "key": "h2h",
                        "outcomes": [
                            {"name": "Washington Wizards", "price": 200},
                            {"name": "Draw", "price": 300},
                            {"name": "Los Angeles Clippers", "price": 150},
                        ],
                    }
                ],
            }
        ]
    )
    event = OddsApiClient(api_key="k").parse_event_row(row=row, sport="basketball_nba")
    assert event is not None
    assert event.quotes == ()


def test_outcome_names_match_despite_case_and_punctuation():
    row = make_row(
        bookmakers=[
            {
                "key": "book-a",
                "markets": [
                    {
                        "key": "H2H",
                        "outcomes": [
                            {"name": "los angeles clippers.", "price": -120},
                            {"name": "WASHINGTON WIZARDS", "price": 100},
                        ],
                    }
                ],
            }
        ]
    )
    event = OddsApiClient(api_key="k").parse_event_row(row=row, sport="basketball_nba")
    assert len(event.quotes) == 1


def test_row_without_teams_is_dropped():
    row = make_row(home_team="")
    assert OddsApiClient(api_key="k").parse_event_row(row=row, sport="basketball_nba") is None


@pytest.mark.asyncio
async def test_fetch_events_requests_american_odds(respx_mock):
    route = respx_mock.get("https://api.the-odds-api.com/v4/sports/basketball_nba/odds").mock(
        return_value=httpx.Response(
            200,
            json=[make_row()],
            headers={"x-requests-remaining": "480", "x-requests-used": "20"},
        )
    )

    client = OddsApiClient(api_key="test-key")
    async with httpx.AsyncClient() as http:
        snapshot = await client.fetch_events(http, sports=["basketball_nba"])

    assert len(snapshot.events) == 1
    assert snapshot.usage.remaining == 480
    assert snapshot.usage.used == 20
    params = route.calls.last.request.url.params
    assert params["oddsFormat"] == "american"
    assert params["markets"] == "h2h"


@pytest.mark.asyncio
async def test_fetch_events_skips_failed_sport(respx_mock):
    respx_mock.get("https://api.the-odds-api.com/v4/sports/basketball_nba/odds").mock(
        return_value=httpx.Response(200, json=[make_row()])
    )
    respx_mock.get("https://api.the-odds-api.com/v4/sports/icehockey_nhl/odds").mock(
        return_value=httpx.Response(500)
    )

    client = OddsApiClient(api_key="test-key")
    async with httpx.AsyncClient() as http:
        snapshot = await client.fetch_events(http, sports=["basketball_nba", "icehockey_nhl"])

    assert len(snapshot.events) == 1
    assert snapshot.failed_sports == ["icehockey_nhl"]


@pytest.mark.asyncio
async def test_fetch_events_all_failed_raises(respx_mock):
    respx_mock.get("https://api.the-odds-api.com/v4/sports/basketball_nba/odds").mock(
        return_value=httpx.Response(503)
    )

    client = OddsApiClient(api_key="test-key")
    async with httpx.AsyncClient() as http:
        with pytest.raises(DataUnavailable):
            await client.fetch_events(http, sports=["basketball_nba"])


@pytest.mark.asyncio
async def test_fetch_events_without_key_raises():
    client = OddsApiClient(api_key="")
    async with httpx.AsyncClient() as http:
        with pytest.raises(DataUnavailable):
            await client.fetch_events(http, sports=["basketball_nba"])


@pytest.mark.asyncio
async def test_fetch_sports_lists_keys(respx_mock):
    respx_mock.get("https://api.the-odds-api.com/v4/sports").mock(
        return_value=httpx.Response(
            200,
            json=[
                {"key": "basketball_nba", "title": "NBA", "active": True},
                {"key": "", "title": "broken"},
            ],
        )
    )

    client = OddsApiClient(api_key="test-key")
    async with httpx.AsyncClient() as http:
        sports = await client.fetch_sports(http)

    assert [s.key for s in sports] == ["basketball_nba"]
    assert sports[0].active is True
