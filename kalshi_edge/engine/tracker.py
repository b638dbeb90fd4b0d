"""Authoritative position/order state plus the local trade-history ledger.

The exchange is the source of truth: each successful portfolio poll
replaces positions and orders wholesale. The ledger (ticker ->
TradeHistoryEntry) is injected by the storage layer and only layered on
top for decision context such as fair value at entry and entry age.
"""

from __future__ import annotations

from dataclasses import replace
from typing import MutableMapping, Optional

import structlog

from kalshi_edge.models import Order, Position, TradeHistoryEntry

logger = structlog.get_logger()


class PositionTracker:
    """Single writer (the tick loop), many readers via copies."""

    def __init__(
        self,
        ledger: Optional[MutableMapping[str, TradeHistoryEntry]] = None,
        empty_confirmations: int = 2,
    ) -> None:
        self._ledger: MutableMapping[str, TradeHistoryEntry] = (
            ledger if ledger is not None else {}
        )
        self._positions: list[Position] = []
        self._orders: list[Order] = []
        self._own_order_ids: set[str] = set()
        self._empty_confirmations = max(1, empty_confirmations)
        self._empty_positions_seen = 0
        self._empty_orders_seen = 0
        self.reconciled_once = False

    # ── Reads (copies) ─────────────────────────────────────────────

    def current_positions(self) -> list[Position]:
        return [replace(p) for p in self._positions]

    def open_positions(self) -> list[Position]:
        return [replace(p) for p in self._positions if p.is_open]

    def current_resting_orders(self) -> list[Order]:
        return [replace(o) for o in self._orders if o.is_resting]

    def engine_resting_orders(self) -> list[Order]:
        return [o for o in self.current_resting_orders() if self.is_engine_order(o)]

    def held_tickers(self) -> set[str]:
        return {p.ticker for p in self._positions if p.is_open}

    def open_position_count(self) -> int:
        return len(self.held_tickers())

    def position_for(self, ticker: str) -> Optional[Position]:
        for p in self._positions:
            if p.ticker == ticker and p.is_open:
                return replace(p)
        return None

    def history_for(self, ticker: str) -> Optional[TradeHistoryEntry]:
        return self._ledger.get(ticker)

    def ledger_snapshot(self) -> dict[str, TradeHistoryEntry]:
        return dict(self._ledger)

    def is_engine_order(self, order: Order) -> bool:
        """Orders this engine placed; anything else is foreign and left alone."""
        if order.order_id in self._own_order_ids:
            return True
        entry = self._ledger.get(order.ticker)
        return entry is not None and bool(entry.order_id) and entry.order_id == order.order_id

    # ── Writes (tick loop only) ────────────────────────────────────

    def record_order_placed(self, entry: TradeHistoryEntry) -> None:
        self._ledger[entry.ticker] = entry
        if entry.order_id:
            self._own_order_ids.add(entry.order_id)

    def record_own_order(self, order_id: str) -> None:
        if order_id:
            self._own_order_ids.add(order_id)

    def forget_order(self, order_id: str) -> None:
        self._own_order_ids.discard(order_id)

    def reconcile(
        self,
        fresh_positions: Optional[list[Position]],
        fresh_orders: Optional[list[Order]],
    ) -> bool:
        """Replace collections from a portfolio poll.

        ``None`` means the poll failed and is never applied. An empty list
        replacing a non-empty snapshot is only applied once it has been
        seen on ``empty_confirmations`` consecutive polls, so one transient
        empty response cannot wipe tracked state. Returns True when
        anything was replaced.
        """
        changed = False

        if fresh_positions is not None:
            if fresh_positions or not self._positions:
                self._positions = [replace(p) for p in fresh_positions]
                self._empty_positions_seen = 0
                changed = True
            else:
                self._empty_positions_seen += 1
                if self._empty_positions_seen >= self._empty_confirmations:
                    self._positions = []
                    self._empty_positions_seen = 0
                    changed = True
                else:
                    logger.warning(
                        "tracker_empty_positions_deferred",
                        held=len(self._positions),
                        seen=self._empty_positions_seen,
                    )

        if fresh_orders is not None:
            if fresh_orders or not self._orders:
                self._orders = [replace(o) for o in fresh_orders]
                self._empty_orders_seen = 0
                changed = True
            else:
                self._empty_orders_seen += 1
                if self._empty_orders_seen >= self._empty_confirmations:
                    self._orders = []
                    self._empty_orders_seen = 0
                    changed = True
                else:
                    logger.warning(
                        "tracker_empty_orders_deferred",
                        resting=len(self._orders),
                        seen=self._empty_orders_seen,
                    )

        if changed:
            self.reconciled_once = True
        return changed
