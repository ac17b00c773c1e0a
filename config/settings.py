"""Configuration management using pydantic-settings."""
from datetime import datetime
from typing import Dict, Optional

from pydantic_settings import BaseSettings


def _compute_current_season() -> int:
    """
    Compute the current football season year.

    API-Football uses the starting year of the season (2025 for 2025-26).
    Football seasons run Aug-May, so Jan-Jul uses previous year's season code.
    """
    now = datetime.now()
    # If we're in Jan-Jul, we're still in last year's season
    if now.month <= 7:
        return now.year - 1
    return now.year


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API-Football configuration
    api_football_key: Optional[str] = None
    api_football_base_url: str = "https://v3.football.api-sports.io"
    api_football_host: str = "v3.football.api-sports.io"
    request_timeout_seconds: float = 10.0

    # Leagues offered for betting: league id -> country
    league_countries: Dict[int, Dict[str, str]] = {
        39: {"name": "England", "code": "GB-ENG"},
        135: {"name": "Italy", "code": "IT"},
        140: {"name": "Spain", "code": "ES"},
    }
    # API-Sports game widget embedded in fixture responses (browser-facing key)
    widget_api_key: Optional[str] = None
    widget_refresh_seconds: int = 15
    widget_script_url: str = "https://widgets.api-sports.io/2.0.3/widgets.js"

    fixtures_window_days: int = 7
    listing_workers: int = 6

    # Current season (single source of truth)
    # Computed dynamically: Jan-Jul = previous year, Aug-Dec = current year
    current_season: int = _compute_current_season()

    # Fixture cache TTLs (seconds), keyed on match status group
    fixture_ttl_live: int = 30
    fixture_ttl_finished: int = 900
    fixture_ttl_pending: int = 300
    fixture_ttl_default: int = 60
    fixture_single_flight: bool = True
    cache_sweep_interval_seconds: int = 300

    # Rate limiting (per scope; global limits are optional)
    rate_limit_per_minute: int = 10
    rate_limit_per_hour: int = 120
    global_rate_limit_per_minute: Optional[int] = 120
    global_rate_limit_per_hour: Optional[int] = 3000
    rate_limit_cooldown_seconds: int = 60
    rate_limiter_prune_interval_seconds: int = 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
