"""Centralized structlog configuration for all kalshi-edge scripts."""

import structlog

_configured = False


def configure_logging() -> None:
    """Configure structlog with the project-standard processor chain.

    Safe to call multiple times; only the first call takes effect.
    """
    global _configured
    if _configured:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ]
    )
    _configured = True
