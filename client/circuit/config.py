"""Client configuration from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Backend-as-a-service
    supabase_url: str = ""
    supabase_anon_key: str = ""
    request_timeout: float = 30.0

    # Page sizes
    route_page_size: int = 10
    gym_page_size: int = 5
    follow_page_size: int = 15
    logbook_page_size: int = 20
    feed_page_size: int = 20

    # Delay before a search keystroke triggers a fetch
    search_debounce_seconds: float = 0.3

    # Logging
    log_dir: Path = Path(__file__).parent.parent / "logs"
    log_level: str = "INFO"

    # App settings
    app_name: str = "The Circuit"
    debug: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
