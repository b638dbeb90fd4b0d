"""Event matching between the odds source and the exchange."""

from kalshi_edge.matching.market_matcher import SPORT_SERIES, MarketMatcher, parse_ticker
from kalshi_edge.matching.normalizer import TeamNormalizer

__all__ = [
    "MarketMatcher",
    "SPORT_SERIES",
    "TeamNormalizer",
    "parse_ticker",
]
