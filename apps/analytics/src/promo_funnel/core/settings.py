from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./promo_funnel.db"
    database_echo: bool = False

    service_name: str = "promo-funnel-analytics"
    service_version: str = "0.1.0"
    log_level: str = "INFO"

    # Historical backfill
    promo_backfill_progress_interval: int = 50
    promo_backfill_commit_batch_size: int = 50
    promo_backfill_usage_scope: Literal["all", "touched"] = "all"

    # Reporting
    promo_reporting_top_limit: int = 10


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
