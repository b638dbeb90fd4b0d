"""Custom exceptions for the kalshi-edge trading engine."""

from __future__ import annotations

from typing import Optional


class EdgeBotError(Exception):
    """Base exception for all kalshi-edge errors."""


class ConfigError(EdgeBotError):
    """Missing or invalid configuration."""


class AuthError(EdgeBotError):
    """Bad key, rejected signature, or expired request timestamp."""


class InvalidKey(AuthError):
    """Private key PEM could not be parsed as an RSA private key."""


class AuthExpired(AuthError):
    """Exchange rejected the request timestamp as outside its tolerance."""


class FeedError(EdgeBotError):
    """Error connecting to or reading from a data feed."""


class DataUnavailable(FeedError):
    """Odds or market data could not be fetched, or came back empty."""


class NoData(DataUnavailable):
    """An odds event carries no usable bookmaker quotes."""


class ExecutionError(EdgeBotError):
    """Error placing, cancelling, or checking an order."""


class OrderRejected(ExecutionError):
    """The exchange declined an order."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OrderCancelError(ExecutionError):
    """Order cancellation failed for a reason other than the order being gone."""


class MatchingAmbiguous(EdgeBotError):
    """An exchange ticker could not be joined to exactly one odds event."""
