from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_refresh_token: str = ""
    strava_api_base: str = "https://www.strava.com/api/v3"
    database_url: str = "sqlite:///./stridesync.db"
    default_owner_id: str = "athlete"  # single-owner deployments; API callers pass owner_id
    default_window_days: int = 30

    # Provider budget
    list_page_size: int = 200
    max_enrichment_calls: int = 15  # detail calls per refresh
    daily_enrichment_limit: int = 90  # detail calls per owner per UTC day
    detail_call_delay_seconds: float = 0.15
    rate_limit_min_remaining: int = 5  # stop enriching below this many short-window calls

    refresh_timeout_seconds: float = 25.0
    http_timeout_seconds: float = 30.0
    refresh_hour: int = 3
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
