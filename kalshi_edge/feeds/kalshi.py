"""Kalshi REST client.

Handles RSA-signed authentication, HTTP GET/POST/DELETE, and translation
of Kalshi payloads into the internal ``Market`` / ``Order`` / ``Position``
types. Raw JSON never leaves this module.

Kalshi specifics:
- Prices in cents (1-99); newer payloads also carry ``*_dollars`` strings
- Side is "yes"/"no", action is "buy"/"sell"
- A position row's sign encodes the side (positive = yes, negative = no)
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx
import structlog

from kalshi_edge.exceptions import (
    AuthError,
    AuthExpired,
    DataUnavailable,
    OrderCancelError,
    OrderRejected,
)
from kalshi_edge.feeds import signer
from kalshi_edge.models import (
    SETTLED,
    UNSETTLED,
    Market,
    Order,
    OrderResult,
    Position,
)
from kalshi_edge.utils.parsing import dollars_to_cents, parse_datetime, to_int

logger = structlog.get_logger()

# Kalshi API endpoints
KALSHI_API_BASE = "https://api.elections.kalshi.com/trade-api/v2"
KALSHI_DEMO_API_BASE = "https://demo-api.kalshi.co/trade-api/v2"

_MAX_PAGES = 20


def _price_cents(row: dict[str, Any], key: str) -> int:
    value = row.get(key)
    if value is not None:
        return to_int(value)
    cents = dollars_to_cents(row.get(f"{key}_dollars"))
    return cents if cents is not None else 0


def parse_market(row: dict[str, Any]) -> Optional[Market]:
    ticker = str(row.get("ticker", "")).strip()
    if not ticker:
        return None
    return Market(
        ticker=ticker,
        event_ticker=str(row.get("event_ticker", "")),
        yes_bid=_price_cents(row, "yes_bid"),
        yes_ask=_price_cents(row, "yes_ask"),
        volume=to_int(row.get("volume")),
        open_interest=to_int(row.get("open_interest")),
        status=str(row.get("status", "")).lower(),
        title=str(row.get("title", "")),
        close_time=parse_datetime(row.get("close_time")),
    )


def parse_order(row: dict[str, Any]) -> Optional[Order]:
    order_id = str(row.get("order_id", "")).strip()
    ticker = str(row.get("ticker", "")).strip()
    if not order_id or not ticker:
        return None
    side = str(row.get("side", "yes")).lower()
    price = _price_cents(row, f"{side}_price")
    filled = to_int(row.get("fill_count", row.get("filled_count")))
    remaining = to_int(row.get("remaining_count"))
    count = to_int(row.get("initial_count", row.get("count")), filled + remaining)
    return Order(
        order_id=order_id,
        ticker=ticker,
        side=side,
        action=str(row.get("action", "buy")).lower(),
        count=count,
        filled_count=filled,
        remaining_count=remaining,
        price_cents=price,
        status=str(row.get("status", "")).lower(),
        created_at=parse_datetime(row.get("created_time")),
        expires_at=parse_datetime(row.get("expiration_time")),
    )


def parse_position(
    row: dict[str, Any], settlement_status: str = UNSETTLED
) -> Optional[Position]:
    ticker = str(row.get("ticker", "")).strip()
    if not ticker:
        return None
    signed_count = to_int(row.get("position"))
    count = abs(signed_count)
    exposure = _price_cents(row, "market_exposure")
    avg_price = exposure / count if count > 0 else 0.0
    status = str(row.get("settlement_status") or settlement_status).lower()
    return Position(
        ticker=ticker,
        contract_count=count,
        avg_price_cents=avg_price,
        total_cost_cents=exposure,
        fees_paid_cents=_price_cents(row, "fees_paid"),
        settlement_status=SETTLED if status == SETTLED else UNSETTLED,
        realized_pnl_cents=_price_cents(row, "realized_pnl"),
        side="no" if signed_count < 0 else "yes",
    )


class KalshiClient:
    """Signed REST access to the Kalshi trading API."""

    def __init__(
        self,
        api_base: str = KALSHI_API_BASE,
        api_key_id: str = "",
        private_key_pem: str = "",
        client: Optional[httpx.AsyncClient] = None,
        now_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key_id = api_key_id
        self.private_key_pem = private_key_pem
        self._client = client
        self._owns_client = client is None
        self._now_ms = now_ms or (lambda: int(time.time() * 1000))
        # Signed paths carry the API prefix, e.g. /trade-api/v2/portfolio/orders
        self._path_prefix = urlparse(self.api_base).path.rstrip("/")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(20.0, connect=10.0)
            self._client = httpx.AsyncClient(timeout=timeout, http2=True)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key_id and self.private_key_pem)

    def _auth_headers(self, method: str, path: str) -> dict[str, str]:
        if not self.has_credentials:
            return {}
        return signer.auth_headers(
            self.api_key_id,
            self.private_key_pem,
            method,
            f"{self._path_prefix}{path}",
            now_ms=self._now_ms(),
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        url = f"{self.api_base}{path}"
        headers = self._auth_headers(method, path)
        resp = await client.request(
            method, url, params=params, json=body, headers=headers
        )
        if resp.status_code in (401, 403):
            raise self._auth_error(resp)
        return resp

    @staticmethod
    def _auth_error(resp: httpx.Response) -> AuthError:
        detail = resp.text[:200]
        if "timestamp" in detail.lower() or "expired" in detail.lower():
            return AuthExpired(f"HTTP {resp.status_code}: {detail}")
        return AuthError(f"HTTP {resp.status_code}: {detail}")

    async def api_get(self, path: str, params: dict | None = None) -> Any:
        """GET request to Kalshi API with auth.

        Network failures and non-2xx statuses surface as ``DataUnavailable``.
        """
        try:
            resp = await self._request("GET", path, params=params)
            resp.raise_for_status()
            return resp.json()
        except AuthError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            raise DataUnavailable(f"GET {path} failed: {exc}") from exc

    async def _get_paginated(
        self, path: str, key: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(_MAX_PAGES):
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor
            payload = await self.api_get(path, params=page_params)
            batch = payload.get(key, []) if isinstance(payload, dict) else []
            if isinstance(batch, list):
                rows.extend(r for r in batch if isinstance(r, dict))
            cursor = payload.get("cursor") if isinstance(payload, dict) else None
            if not cursor:
                break
        return rows

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_markets(
        self,
        series_ticker: Optional[str] = None,
        status: str = "open",
        limit: int = 200,
    ) -> list[Market]:
        params: dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        if series_ticker:
            params["series_ticker"] = series_ticker
        rows = await self._get_paginated("/markets", "markets", params)
        markets = [m for m in (parse_market(r) for r in rows) if m is not None]
        logger.debug("kalshi_markets_fetched", series=series_ticker, count=len(markets))
        return markets

    async def get_balance(self) -> int:
        payload = await self.api_get("/portfolio/balance")
        return to_int(payload.get("balance")) if isinstance(payload, dict) else 0

    async def get_orders(self, status: Optional[str] = None) -> list[Order]:
        params: dict[str, Any] = {"limit": 200}
        if status:
            params["status"] = status
        rows = await self._get_paginated("/portfolio/orders", "orders", params)
        return [o for o in (parse_order(r) for r in rows) if o is not None]

    async def get_positions(
        self, settlement_status: Optional[str] = None
    ) -> list[Position]:
        params: dict[str, Any] = {"limit": 200}
        if settlement_status:
            params["settlement_status"] = settlement_status
        rows = await self._get_paginated(
            "/portfolio/positions", "market_positions", params
        )
        default_status = SETTLED if settlement_status == SETTLED else UNSETTLED
        positions = [parse_position(r, default_status) for r in rows]
        return [p for p in positions if p is not None]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def place_order(
        self,
        ticker: str,
        action: str,
        count: int,
        price_cents: int,
        side: str = "yes",
        time_in_force: Optional[str] = None,
    ) -> OrderResult:
        """Submit a signed limit order.

        Raises ``OrderRejected`` on any non-2xx response or transport
        failure and ``AuthError`` when the signature is refused.
        """
        price_cents = max(1, min(99, int(price_cents)))
        body: dict[str, Any] = {
            "ticker": ticker,
            "action": action,
            "side": side,
            "type": "limit",
            "count": int(count),
            f"{side}_price": price_cents,
            "client_order_id": str(uuid.uuid4()),
        }
        if time_in_force:
            body["time_in_force"] = time_in_force

        try:
            resp = await self._request("POST", "/portfolio/orders", body=body)
        except httpx.HTTPError as exc:
            raise OrderRejected(f"order transport failed: {exc}") from exc

        if resp.status_code >= 300:
            raise OrderRejected(
                f"HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise OrderRejected(f"unreadable order response: {exc}") from exc
        if not isinstance(payload, dict):
            payload = {}
        order = payload.get("order") or {}
        order_id = str(order.get("order_id") or payload.get("order_id") or "")
        if not order_id:
            raise OrderRejected(f"no order_id in response: {payload}")
        return OrderResult(
            order_id=order_id,
            status=str(order.get("status", "placed")),
            filled_count=to_int(order.get("fill_count", order.get("filled_count"))),
        )

    async def cancel_order(self, order_id: str) -> bool:
        """Cancel an order. A 404 means it is already gone and counts as success."""
        path = f"/portfolio/orders/{order_id}"
        try:
            resp = await self._request("DELETE", path)
        except httpx.HTTPError as exc:
            raise OrderCancelError(f"cancel {order_id} failed: {exc}") from exc

        if resp.status_code == 404:
            logger.info("kalshi_cancel_already_gone", order_id=order_id)
            return True
        if resp.status_code >= 300:
            raise OrderCancelError(f"HTTP {resp.status_code}: {resp.text[:200]}")
        return True
