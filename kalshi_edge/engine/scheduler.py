"""Session scheduler: drives ticks on an interval inside a trading window.

The bot can be enabled and disabled at any time. Disabling takes effect
before the next order submission, even mid-tick, because the order
manager re-checks ``Scheduler.is_enabled`` immediately before each one.
Outside the configured window the engine still refreshes data for
display but makes no order decisions.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from datetime import time as dtime
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

import structlog

from kalshi_edge.engine.config import ScheduleConfig
from kalshi_edge.engine.engine import EngineState, TickResult, TradingEngine

logger = structlog.get_logger()


class Clock(Protocol):
    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(frozen=True, slots=True)
class ScheduleWindow:
    """Daily trading window in a local timezone.

    ``end`` earlier than ``start`` means the window crosses midnight; the
    weekday check then applies to the day the window opened.
    """

    start: dtime
    end: dtime
    days: frozenset[int] = frozenset(range(7))
    tz: ZoneInfo = ZoneInfo("America/New_York")

    @classmethod
    def from_config(cls, schedule: ScheduleConfig) -> "ScheduleWindow":
        return cls(
            start=schedule.start,
            end=schedule.end,
            days=frozenset(schedule.days),
            tz=ZoneInfo(schedule.timezone),
        )

    def contains(self, dt: datetime) -> bool:
        local = dt.astimezone(self.tz)
        t = local.time().replace(tzinfo=None)
        if self.start <= self.end:
            return local.weekday() in self.days and self.start <= t <= self.end
        if t >= self.start:
            return local.weekday() in self.days
        if t <= self.end:
            return (local - timedelta(days=1)).weekday() in self.days
        return False


@dataclass(slots=True)
class SessionStats:
    started_at: Optional[datetime] = None
    tick_count: int = 0
    skipped_ticks: int = 0
    errors: int = 0
    orders_placed: int = 0

    def elapsed(self, now: datetime) -> timedelta:
        if self.started_at is None:
            return timedelta(0)
        return now - self.started_at


class Scheduler:
    """Owns the tick loop, the enable flag and the session counters."""

    def __init__(
        self,
        engine: TradingEngine,
        state: EngineState,
        clock: Optional[Clock] = None,
    ) -> None:
        self.engine = engine
        self.state = state
        self.clock: Clock = clock or SystemClock()
        self.stats = SessionStats()
        self.enabled = False
        self.running = False
        self._in_flight = False
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        engine.set_gate(self.is_enabled, self._halt)

    # ── Controls ─────────────────────────────────────────────────

    def is_enabled(self) -> bool:
        return self.enabled

    def enable(self) -> None:
        self.enabled = True
        self.state.event_log.add("Bot enabled")
        logger.info("bot_enabled")

    def disable(self) -> None:
        self.enabled = False
        self.state.event_log.add("Bot disabled")
        logger.info("bot_disabled")

    def _halt(self, reason: str) -> None:
        self.enabled = False
        self.state.event_log.add(f"Trading halted: {reason}", "ERROR")
        logger.error("bot_halted", reason=reason)

    def set_turbo(self, on: bool) -> None:
        self.state.config = self.state.config.with_updates(is_turbo_mode=on)
        self._restart_timer()

    def set_interval(self, seconds: float) -> None:
        """Change the interval of the active mode (turbo or normal)."""
        key = (
            "turbo_interval_seconds"
            if self.state.config.is_turbo_mode
            else "refresh_interval_seconds"
        )
        self.state.config = self.state.config.with_updates(**{key: seconds})
        self._restart_timer()

    def _restart_timer(self) -> None:
        logger.info("scheduler_interval", seconds=self.state.config.poll_interval)
        self._wake.set()

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self.running = True
        self.enable()
        self.stats = SessionStats(started_at=self.clock.now())
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self.running = False
        self.enabled = False
        self._wake.set()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                logger.info("scheduler_task_cancelled")
        logger.info(
            "session_stopped",
            ticks=self.stats.tick_count,
            skipped=self.stats.skipped_ticks,
            errors=self.stats.errors,
            orders=self.stats.orders_placed,
        )

    async def run(self) -> None:
        self.running = True
        while self.running:
            await self.fire()
            if not self.running:
                break
            await self._wait()

    async def _wait(self) -> None:
        """Sleep one poll interval.

        A timer restart (interval or turbo change) starts a fresh sleep at the
        new interval without firing a tick; only ``stop`` ends the wait early.
        """
        while self.running:
            self._wake.clear()
            sleeper = asyncio.ensure_future(
                self.clock.sleep(self.state.config.poll_interval)
            )
            waker = asyncio.ensure_future(self._wake.wait())
            done, pending = await asyncio.wait(
                {sleeper, waker}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            if sleeper in done:
                return

    # ── Ticks ────────────────────────────────────────────────────

    def in_window(self, now: Optional[datetime] = None) -> bool:
        schedule = self.state.config.schedule
        if not schedule.enabled:
            return True
        return ScheduleWindow.from_config(schedule).contains(now or self.clock.now())

    async def fire(self) -> Optional[TickResult]:
        """Run one tick unless one is already in flight (then coalesce)."""
        if self._in_flight:
            self.stats.skipped_ticks += 1
            logger.debug("tick_coalesced", skipped=self.stats.skipped_ticks)
            return None

        self._in_flight = True
        trading_allowed = self.enabled and self.in_window()
        try:
            result = await self.engine.tick(self.state, trading_allowed)
        except Exception as exc:
            self.stats.errors += 1
            logger.exception("tick_failed", error=str(exc))
            self.state.event_log.add(f"Tick failed: {exc}", "ERROR")
            return None
        finally:
            self._in_flight = False
            self.stats.orders_placed = self.engine.orders_placed

        self.stats.tick_count += 1
        if result.error:
            self.stats.errors += 1
        return result
