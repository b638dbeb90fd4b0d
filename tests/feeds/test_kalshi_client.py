import json

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from kalshi_edge.exceptions import (
    AuthError,
    AuthExpired,
    DataUnavailable,
    OrderCancelError,
    OrderRejected,
)
from kalshi_edge.feeds import signer
from kalshi_edge.feeds.kalshi import (
    KalshiClient,
    parse_market,
    parse_order,
    parse_position,
)
from kalshi_edge.models import SETTLED, UNSETTLED

BASE = "https://api.test.kalshi.com/trade-api/v2"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def make_client(pem: str, http: httpx.AsyncClient) -> KalshiClient:
    return KalshiClient(
        api_base=BASE,
        api_key_id="key-1",
        private_key_pem=pem,
        client=http,
        now_ms=lambda: 1700000000000,
    )


# ------------------------------------------------------------------
# Parsers
# ------------------------------------------------------------------


def test_parse_market_reads_cents_and_dollar_fields():
    market = parse_market(
        {
            "ticker": "KXNBAGAME-26JAN19LACWAS-LAC",
            "event_ticker": "KXNBAGAME-26JAN19LACWAS",
            "yes_bid_dollars": "0.4100",
            "yes_ask": 44,
            "volume": 1200,
            "status": "Active",
        }
    )
    assert market is not None
    assert market.yes_bid == 41
    assert market.yes_ask == 44
    assert market.status == "active"
    assert market.spread == 3


def test_parse_market_without_ticker_is_dropped():
    assert parse_market({"yes_bid": 40}) is None


def test_parse_order_uses_side_price():
    order = parse_order(
        {
            "order_id": "o-1",
            "ticker": "T-1",
            "side": "no",
            "action": "buy",
            "no_price": 37,
            "remaining_count": 4,
            "fill_count": 6,
            "status": "resting",
        }
    )
    assert order is not None
    assert order.price_cents == 37
    assert order.count == 10
    assert order.is_resting


def test_parse_position_sign_gives_side_and_average_price():
    pos = parse_position(
        {"ticker": "T-1", "position": -10, "market_exposure": 450, "realized_pnl": 0}
    )
    assert pos is not None
    assert pos.side == "no"
    assert pos.contract_count == 10
    assert pos.avg_price_cents == 45.0
    assert pos.settlement_status == UNSETTLED


def test_parse_position_reads_settlement_status():
    pos = parse_position(
        {"ticker": "T-1", "position": 0, "settlement_status": "settled", "realized_pnl": 120}
    )
    assert pos.settlement_status == SETTLED
    assert pos.realized_pnl_cents == 120
    assert not pos.is_open


# ------------------------------------------------------------------
# Client
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_requests_are_signed_over_prefixed_path(respx_mock, pem, rsa_key):
    route = respx_mock.get(f"{BASE}/portfolio/balance").mock(
        return_value=httpx.Response(200, json={"balance": 12345})
    )
    async with httpx.AsyncClient() as http:
        balance = await make_client(pem, http).get_balance()

    assert balance == 12345
    request = route.calls.last.request
    assert request.headers[signer.HEADER_KEY] == "key-1"
    assert request.headers[signer.HEADER_TIMESTAMP] == "1700000000000"
    assert signer.verify(
        rsa_key.public_key(),
        request.headers[signer.HEADER_SIGNATURE],
        "GET",
        "/trade-api/v2/portfolio/balance",
        "1700000000000",
    )


@pytest.mark.asyncio
async def test_get_markets_follows_cursor(respx_mock, pem):
    respx_mock.get(f"{BASE}/markets").mock(
        side_effect=[
            httpx.Response(
                200,
                json={"markets": [{"ticker": "A-1", "yes_bid": 10}], "cursor": "next"},
            ),
            httpx.Response(200, json={"markets": [{"ticker": "B-1"}], "cursor": ""}),
        ]
    )
    async with httpx.AsyncClient() as http:
        markets = await make_client(pem, http).get_markets(series_ticker="KXNBAGAME")

    assert [m.ticker for m in markets] == ["A-1", "B-1"]


@pytest.mark.asyncio
async def test_get_positions_reads_market_positions(respx_mock, pem):
    respx_mock.get(f"{BASE}/portfolio/positions").mock(
        return_value=httpx.Response(
            200,
            json={
                "market_positions": [
                    {"ticker": "T-1", "position": 10, "market_exposure": 410}
                ]
            },
        )
    )
    async with httpx.AsyncClient() as http:
        positions = await make_client(pem, http).get_positions()

    assert len(positions) == 1
    assert positions[0].avg_price_cents == 41.0


@pytest.mark.asyncio
async def test_server_error_becomes_data_unavailable(respx_mock, pem):
    respx_mock.get(f"{BASE}/portfolio/orders").mock(return_value=httpx.Response(500))
    async with httpx.AsyncClient() as http:
        with pytest.raises(DataUnavailable):
            await make_client(pem, http).get_orders(status="resting")


@pytest.mark.asyncio
async def test_unauthorized_raises_auth_error(respx_mock, pem):
    respx_mock.get(f"{BASE}/portfolio/balance").mock(
        return_value=httpx.Response(401, text="invalid signature")
    )
    async with httpx.AsyncClient() as http:
        with pytest.raises(AuthError):
            await make_client(pem, http).get_balance()


@pytest.mark.asyncio
async def test_stale_timestamp_raises_auth_expired(respx_mock, pem):
    respx_mock.get(f"{BASE}/portfolio/balance").mock(
        return_value=httpx.Response(401, text="request timestamp expired")
    )
    async with httpx.AsyncClient() as http:
        with pytest.raises(AuthExpired):
            await make_client(pem, http).get_balance()


@pytest.mark.asyncio
async def test_place_order_posts_limit_order(respx_mock, pem):
    route = respx_mock.post(f"{BASE}/portfolio/orders").mock(
        return_value=httpx.Response(
            201, json={"order": {"order_id": "ord-9", "status": "resting"}}
        )
    )
    async with httpx.AsyncClient() as http:
        result = await make_client(pem, http).place_order(
            ticker="T-1", action="buy", count=10, price_cents=42
        )

    assert result.ok
    assert result.order_id == "ord-9"
    body = json.loads(route.calls.last.request.content)
    assert body["ticker"] == "T-1"
    assert body["action"] == "buy"
    assert body["side"] == "yes"
    assert body["type"] == "limit"
    assert body["yes_price"] == 42
    assert body["count"] == 10
    assert body["client_order_id"]
    assert "time_in_force" not in body


@pytest.mark.asyncio
async def test_place_order_immediate_or_cancel(respx_mock, pem):
    route = respx_mock.post(f"{BASE}/portfolio/orders").mock(
        return_value=httpx.Response(201, json={"order": {"order_id": "ord-10"}})
    )
    async with httpx.AsyncClient() as http:
        await make_client(pem, http).place_order(
            ticker="T-1",
            action="sell",
            count=5,
            price_cents=38,
            time_in_force="immediate_or_cancel",
        )

    body = json.loads(route.calls.last.request.content)
    assert body["time_in_force"] == "immediate_or_cancel"


@pytest.mark.asyncio
async def test_place_order_rejection_carries_status(respx_mock, pem):
    respx_mock.post(f"{BASE}/portfolio/orders").mock(
        return_value=httpx.Response(400, json={"error": "insufficient_balance"})
    )
    async with httpx.AsyncClient() as http:
        with pytest.raises(OrderRejected) as exc_info:
            await make_client(pem, http).place_order(
                ticker="T-1", action="buy", count=10, price_cents=42
            )

    assert exc_info.value.status_code == 400
    assert "insufficient" in str(exc_info.value)


@pytest.mark.asyncio
async def test_cancel_missing_order_is_success(respx_mock, pem):
    respx_mock.delete(f"{BASE}/portfolio/orders/gone").mock(
        return_value=httpx.Response(404)
    )
    async with httpx.AsyncClient() as http:
        assert await make_client(pem, http).cancel_order("gone") is True


@pytest.mark.asyncio
async def test_cancel_server_error_raises(respx_mock, pem):
    respx_mock.delete(f"{BASE}/portfolio/orders/o-1").mock(
        return_value=httpx.Response(500)
    )
    async with httpx.AsyncClient() as http:
        with pytest.raises(OrderCancelError):
            await make_client(pem, http).cancel_order("o-1")
