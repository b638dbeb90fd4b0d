"""Typed operator configuration fed into the engine each tick."""

from __future__ import annotations

from datetime import time as dtime

from pydantic import BaseModel, Field, field_validator


class BailoutConfig(BaseModel):
    enabled: bool = False
    trigger_window_hours: float = Field(default=2.0, ge=0)
    loss_trigger_percent: float = Field(default=20.0, ge=0, le=100)


class ScheduleConfig(BaseModel):
    enabled: bool = False
    start: dtime = dtime(0, 0)
    end: dtime = dtime(23, 59)
    # 0 = Monday ... 6 = Sunday
    days: frozenset[int] = frozenset(range(7))
    timezone: str = "America/New_York"

    @field_validator("days")
    @classmethod
    def _valid_days(cls, value: frozenset[int]) -> frozenset[int]:
        if any(d < 0 or d > 6 for d in value):
            raise ValueError("days must be weekday numbers 0-6")
        return value


class BotConfig(BaseModel):
    bid_margin_percent: float = Field(default=15.0, ge=0, lt=100)
    auto_close_margin_percent: float = Field(default=15.0, ge=0)
    trade_size: int = Field(default=10, gt=0)
    max_positions: int = Field(default=5, ge=0)
    is_auto_bid: bool = False
    is_auto_close: bool = False
    is_turbo_mode: bool = False
    refresh_interval_seconds: float = Field(default=15.0, gt=0)
    turbo_interval_seconds: float = Field(default=3.0, gt=0)
    bailout: BailoutConfig = Field(default_factory=BailoutConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    selected_sports: list[str] = Field(default_factory=lambda: ["basketball_nba"])

    min_fair_value: int = Field(default=0, ge=0, le=100)
    enable_liquidity_checks: bool = False
    min_volume: int = Field(default=0, ge=0)
    max_bid_ask_spread: int = Field(default=99, ge=0)
    enable_sport_diversification: bool = False
    max_positions_per_sport: int = Field(default=3, ge=0)
    fee_aware_close: bool = False

    stale_fetch_seconds: float = Field(default=30.0, gt=0)
    max_odds_age_minutes: float = Field(default=60.0, gt=0)

    @property
    def poll_interval(self) -> float:
        if self.is_turbo_mode:
            return self.turbo_interval_seconds
        return self.refresh_interval_seconds

    def with_updates(self, **changes: object) -> "BotConfig":
        """Validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return BotConfig.model_validate(data)
