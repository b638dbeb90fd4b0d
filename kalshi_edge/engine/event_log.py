"""Operator-facing event log.

A bounded list of timestamped, human-readable entries for whoever is
watching the bot. Every entry is mirrored to structlog. Readers get a
copy; only the tick loop appends.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()

LEVELS = ("INFO", "BID", "UPDATE", "CANCEL", "CLOSE", "ERROR")


@dataclass(frozen=True, slots=True)
class LogEntry:
    ts: datetime
    level: str
    message: str


class EventLog:

    def __init__(
        self,
        max_entries: int = 500,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def add(self, message: str, level: str = "INFO") -> LogEntry:
        level = level.upper()
        if level not in LEVELS:
            level = "INFO"
        entry = LogEntry(ts=self._now(), level=level, message=message)
        self._entries.append(entry)
        if level == "ERROR":
            logger.error("event_log", level=level, message=message)
        else:
            logger.info("event_log", level=level, message=message)
        return entry

    def entries(self, level: Optional[str] = None) -> list[LogEntry]:
        if level is None:
            return list(self._entries)
        return [e for e in self._entries if e.level == level.upper()]

    def __len__(self) -> int:
        return len(self._entries)

    def format(self) -> str:
        """Plain-text dump, oldest first, for copying out of the bot."""
        return "\n".join(
            f"[{e.ts.strftime('%H:%M:%S')}] {e.level}: {e.message}"
            for e in self._entries
        )
