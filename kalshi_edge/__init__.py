"""Cross-market edge trading engine for Kalshi sports contracts."""

__version__ = "0.1.0"
