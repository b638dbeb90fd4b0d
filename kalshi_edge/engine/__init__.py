"""Trading engine: per-tick decisions, position tracking and scheduling."""

from .config import BailoutConfig, BotConfig, ScheduleConfig
from .engine import EngineState, TickResult, TradingEngine
from .event_log import EventLog, LogEntry
from .order_manager import OrderManager
from .scheduler import Scheduler, ScheduleWindow, SessionStats, SystemClock
from .stats import PortfolioStats, compute_stats
from .strategy import (
    EntryDecision,
    ExitDecision,
    StrategyEngine,
    auto_close_decision,
    bailout_decision,
    entry_decision,
)
from .tracker import PositionTracker

__all__ = [
    "BailoutConfig",
    "BotConfig",
    "ScheduleConfig",
    "EngineState",
    "TickResult",
    "TradingEngine",
    "EventLog",
    "LogEntry",
    "OrderManager",
    "Scheduler",
    "ScheduleWindow",
    "SessionStats",
    "SystemClock",
    "PortfolioStats",
    "compute_stats",
    "EntryDecision",
    "ExitDecision",
    "StrategyEngine",
    "auto_close_decision",
    "bailout_decision",
    "entry_decision",
    "PositionTracker",
]
