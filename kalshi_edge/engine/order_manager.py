"""Signed order submission with an enable gate and idempotent cancels."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from kalshi_edge.engine.event_log import EventLog
from kalshi_edge.engine.tracker import PositionTracker
from kalshi_edge.exceptions import OrderCancelError, OrderRejected
from kalshi_edge.models import JoinedMarket, OrderResult, TradeHistoryEntry

logger = structlog.get_logger()


class OrderManager:
    """Places and cancels orders for the strategy.

    ``is_enabled`` is re-checked immediately before every submission so a
    bot disabled mid-tick never sends another order. Failed submissions
    are logged and reported as None; they are not retried here, the next
    tick re-evaluates from scratch. ``AuthError`` propagates so the tick
    can abandon its remaining trading actions.
    """

    def __init__(
        self,
        *,
        client: Any,
        tracker: PositionTracker,
        event_log: EventLog,
        is_enabled: Callable[[], bool],
        on_critical: Optional[Callable[[str], None]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.client = client
        self.tracker = tracker
        self.event_log = event_log
        self.is_enabled = is_enabled
        self.on_critical = on_critical
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.orders_placed = 0

    def _gate(self, what: str, ticker: str) -> bool:
        if self.is_enabled():
            return True
        logger.info("order_suppressed_disabled", action=what, ticker=ticker)
        return False

    async def place_buy(
        self,
        market: JoinedMarket,
        price_cents: int,
        count: int,
        source: str = "auto",
    ) -> Optional[OrderResult]:
        if not self._gate("buy", market.ticker):
            return None
        try:
            result = await self.client.place_order(
                ticker=market.ticker,
                action="buy",
                count=count,
                price_cents=price_cents,
                side="yes",
            )
        except OrderRejected as exc:
            self._rejected(market.ticker, "buy", exc)
            return None

        self.orders_placed += 1
        self.tracker.record_order_placed(
            TradeHistoryEntry(
                ticker=market.ticker,
                event=market.event_label,
                source=source,
                fair_value_cents=market.fair_value_cents,
                bid_price_cents=price_cents,
                order_placed_at=self._now(),
                odds_time=market.odds_time,
                order_id=result.order_id,
            )
        )
        self.event_log.add(
            f"Placed bid on {market.ticker} @ {price_cents}¢ (Qty: {count}) "
            f"FV {market.fair_value_cents}¢",
            "BID",
        )
        logger.info(
            "order_placed",
            ticker=market.ticker,
            action="buy",
            price=price_cents,
            count=count,
            order_id=result.order_id,
        )
        return result

    async def place_sell(
        self,
        ticker: str,
        price_cents: int,
        count: int,
        side: str = "yes",
        immediate: bool = False,
        reason: str = "close",
    ) -> Optional[OrderResult]:
        if not self._gate("sell", ticker):
            return None
        try:
            result = await self.client.place_order(
                ticker=ticker,
                action="sell",
                count=count,
                price_cents=price_cents,
                side=side,
                time_in_force="immediate_or_cancel" if immediate else None,
            )
        except OrderRejected as exc:
            self._rejected(ticker, "sell", exc)
            return None

        self.orders_placed += 1
        self.tracker.record_own_order(result.order_id)
        label = "Bail Out" if reason == "bailout" else "Closing position on"
        self.event_log.add(f"{label} {ticker} @ {price_cents}¢ (Qty: {count})", "CLOSE")
        logger.info(
            "order_placed",
            ticker=ticker,
            action="sell",
            price=price_cents,
            count=count,
            reason=reason,
            order_id=result.order_id,
        )
        return result

    async def cancel(self, order_id: str, ticker: str = "", reason: str = "") -> bool:
        """Cancel an order; an already-gone order counts as cancelled."""
        try:
            await self.client.cancel_order(order_id)
        except OrderCancelError as exc:
            logger.warning("cancel_order_failed", order_id=order_id, error=str(exc))
            self.event_log.add(f"Cancel failed for {ticker or order_id}: {exc}", "ERROR")
            return False
        self.tracker.forget_order(order_id)
        suffix = f" ({reason})" if reason else ""
        self.event_log.add(f"Canceled order {ticker or order_id}{suffix}", "CANCEL")
        return True

    def _rejected(self, ticker: str, action: str, exc: OrderRejected) -> None:
        logger.warning(
            "order_rejected",
            ticker=ticker,
            action=action,
            status=exc.status_code,
            error=str(exc),
        )
        self.event_log.add(f"Order rejected {action} {ticker}: {exc}", "ERROR")
        if "insufficient" in str(exc).lower() and self.on_critical is not None:
            self.on_critical(f"insufficient funds on {ticker}")
