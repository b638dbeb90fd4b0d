"""Credential and configuration validators."""

from pathlib import Path

from kalshi_edge.exceptions import ConfigError


def validate_kalshi_credentials() -> None:
    """Raise ConfigError if Kalshi signing credentials are missing."""
    from config.settings import settings
    if not settings.KALSHI_API_KEY_ID:
        raise ConfigError("KALSHI_API_KEY_ID is required")
    if not settings.KALSHI_PRIVATE_KEY_PATH:
        raise ConfigError("KALSHI_PRIVATE_KEY_PATH is required")
    if not Path(settings.KALSHI_PRIVATE_KEY_PATH).is_file():
        raise ConfigError(f"private key not found: {settings.KALSHI_PRIVATE_KEY_PATH}")


def validate_odds_api() -> None:
    """Raise ConfigError if Odds API key is missing."""
    from config.settings import settings
    if not settings.ODDS_API_KEY:
        raise ConfigError("ODDS_API_KEY is required for fair value pricing")
