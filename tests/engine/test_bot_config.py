import pytest
from pydantic import ValidationError

from kalshi_edge.engine.config import BotConfig, ScheduleConfig


def test_defaults():
    config = BotConfig()
    assert config.bid_margin_percent == 15.0
    assert config.max_positions == 5
    assert config.is_auto_bid is False
    assert config.bailout.enabled is False
    assert config.stale_fetch_seconds == 30.0
    assert config.max_odds_age_minutes == 60.0


def test_poll_interval_follows_turbo_mode():
    config = BotConfig(refresh_interval_seconds=15, turbo_interval_seconds=3)
    assert config.poll_interval == 15
    assert config.with_updates(is_turbo_mode=True).poll_interval == 3


def test_with_updates_validates():
    with pytest.raises(ValidationError):
        BotConfig().with_updates(trade_size=0)


def test_negative_margin_rejected():
    with pytest.raises(ValidationError):
        BotConfig(bid_margin_percent=-1)


def test_schedule_days_must_be_weekdays():
    with pytest.raises(ValidationError):
        ScheduleConfig(days=frozenset({7}))
