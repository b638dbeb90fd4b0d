from .kalshi import KALSHI_API_BASE, KALSHI_DEMO_API_BASE, KalshiClient
from .odds_api import OddsApiClient, OddsApiSnapshot, OddsApiUsage, Sport

__all__ = [
    "KALSHI_API_BASE",
    "KALSHI_DEMO_API_BASE",
    "KalshiClient",
    "OddsApiClient",
    "OddsApiSnapshot",
    "OddsApiUsage",
    "Sport",
]
