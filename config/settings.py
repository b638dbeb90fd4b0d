"""Runtime configuration, read from the environment and ``.env``."""

from datetime import time as dtime

from pydantic_settings import BaseSettings

from kalshi_edge.engine.config import BailoutConfig, BotConfig, ScheduleConfig


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    # === Kalshi ===
    KALSHI_API_KEY_ID: str = ""
    KALSHI_PRIVATE_KEY_PATH: str = ""
    KALSHI_API_BASE: str = "https://api.elections.kalshi.com/trade-api/v2"
    KALSHI_DEMO: bool = False  # use the demo exchange instead of KALSHI_API_BASE

    # === The Odds API ===
    ODDS_API_KEY: str = ""
    ODDS_API_BASE_URL: str = "https://api.the-odds-api.com/v4"
    ODDS_API_REGIONS: str = "us"
    ODDS_API_MARKETS: str = "h2h"

    # === Entry / exit ===
    EDGE_BID_MARGIN_PCT: float = 15.0
    EDGE_AUTO_CLOSE_MARGIN_PCT: float = 15.0
    EDGE_TRADE_SIZE: int = 10
    EDGE_MAX_POSITIONS: int = 5
    EDGE_AUTO_BID: bool = False
    EDGE_AUTO_CLOSE: bool = False
    EDGE_MIN_FAIR_VALUE: int = 0
    EDGE_VOLATILITY_WINDOW: int = 10
    EDGE_SPORTS: str = "basketball_nba"
    EDGE_SPORT_DIVERSIFICATION: bool = False
    EDGE_MAX_POSITIONS_PER_SPORT: int = 3

    # === Polling ===
    EDGE_REFRESH_INTERVAL_SECONDS: float = 15.0
    EDGE_TURBO_MODE: bool = False
    EDGE_TURBO_INTERVAL_SECONDS: float = 3.0

    # === Bail-out (stop loss) ===
    EDGE_BAILOUT_ENABLED: bool = False
    EDGE_BAILOUT_TRIGGER_HOURS: float = 2.0
    EDGE_BAILOUT_LOSS_PCT: float = 20.0

    # === Trading window ===
    EDGE_SCHEDULE_ENABLED: bool = False
    EDGE_SCHEDULE_START: str = "00:00"
    EDGE_SCHEDULE_END: str = "23:59"
    EDGE_SCHEDULE_DAYS: str = "0,1,2,3,4,5,6"  # 0 = Monday
    EDGE_SCHEDULE_TIMEZONE: str = "America/New_York"

    model_config = {"env_file": ".env"}

    @property
    def kalshi_api_base(self) -> str:
        if self.KALSHI_DEMO:
            return "https://demo-api.kalshi.co/trade-api/v2"
        return self.KALSHI_API_BASE

    def bot_config(self) -> BotConfig:
        return BotConfig(
            bid_margin_percent=self.EDGE_BID_MARGIN_PCT,
            auto_close_margin_percent=self.EDGE_AUTO_CLOSE_MARGIN_PCT,
            trade_size=self.EDGE_TRADE_SIZE,
            max_positions=self.EDGE_MAX_POSITIONS,
            is_auto_bid=self.EDGE_AUTO_BID,
            is_auto_close=self.EDGE_AUTO_CLOSE,
            is_turbo_mode=self.EDGE_TURBO_MODE,
            refresh_interval_seconds=self.EDGE_REFRESH_INTERVAL_SECONDS,
            turbo_interval_seconds=self.EDGE_TURBO_INTERVAL_SECONDS,
            min_fair_value=self.EDGE_MIN_FAIR_VALUE,
            selected_sports=_csv(self.EDGE_SPORTS),
            enable_sport_diversification=self.EDGE_SPORT_DIVERSIFICATION,
            max_positions_per_sport=self.EDGE_MAX_POSITIONS_PER_SPORT,
            bailout=BailoutConfig(
                enabled=self.EDGE_BAILOUT_ENABLED,
                trigger_window_hours=self.EDGE_BAILOUT_TRIGGER_HOURS,
                loss_trigger_percent=self.EDGE_BAILOUT_LOSS_PCT,
            ),
            schedule=ScheduleConfig(
                enabled=self.EDGE_SCHEDULE_ENABLED,
                start=dtime.fromisoformat(self.EDGE_SCHEDULE_START),
                end=dtime.fromisoformat(self.EDGE_SCHEDULE_END),
                days=frozenset(int(d) for d in _csv(self.EDGE_SCHEDULE_DAYS)),
                timezone=self.EDGE_SCHEDULE_TIMEZONE,
            ),
        )


settings = Settings()
