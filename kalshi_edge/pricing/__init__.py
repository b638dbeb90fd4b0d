"""Odds-to-probability conversion, fair value and fee math."""

from kalshi_edge.pricing.odds import OddsAggregator, compute_fair_value, round_half_up

__all__ = ["OddsAggregator", "compute_fair_value", "round_half_up"]
