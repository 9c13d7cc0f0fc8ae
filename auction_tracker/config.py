# auction_tracker/config.py
"""Environment-driven settings.

Values come from the process environment, with a `.env` file loaded first
through python-dotenv. Every tunable of the pipeline lives here so tests and
the cron entry point can build a `Settings` explicitly.
"""
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    db_pool_size: int = 5
    db_max_overflow: int = 10
    cron_secret: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_service_role: bool = False
    log_level: str = "INFO"

    # live scraping
    scrape_max_pages: int = 2
    scrape_details: bool = False
    scrape_max_details: int = 10
    fetch_timeout: float = 10.0
    historical_fetch_timeout: float = 30.0
    request_delay: float = 2.5
    cache_ttl_hours: float = 24.0

    # pipeline budget
    pipeline_max_seconds: float = 300.0
    backfill_min_seconds: float = 60.0
    backfill_max_models: int = 3
    backfill_months: int = 12
    refresh_limit: int = 20

    scheduler_enabled: bool = False
    scheduler_interval_hours: float = 6.0

    @classmethod
    def from_env(cls) -> "Settings":
        service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        return cls(
            database_url=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL"),
            db_pool_size=_env_int("DB_POOL_SIZE", 5),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
            cron_secret=os.getenv("CRON_SECRET") or None,
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=service_key or os.getenv("SUPABASE_ANON_KEY") or None,
            supabase_service_role=bool(service_key),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            scrape_max_pages=_env_int("SCRAPE_MAX_PAGES", 2),
            scrape_details=_env_bool("SCRAPE_DETAILS", False),
            scrape_max_details=_env_int("SCRAPE_MAX_DETAILS", 10),
            fetch_timeout=_env_float("FETCH_TIMEOUT", 10.0),
            historical_fetch_timeout=_env_float("HISTORICAL_FETCH_TIMEOUT", 30.0),
            request_delay=_env_float("REQUEST_DELAY", 2.5),
            cache_ttl_hours=_env_float("CACHE_TTL_HOURS", 24.0),
            pipeline_max_seconds=_env_float("PIPELINE_MAX_SECONDS", 300.0),
            backfill_min_seconds=_env_float("BACKFILL_MIN_SECONDS", 60.0),
            backfill_max_models=_env_int("BACKFILL_MAX_MODELS", 3),
            backfill_months=_env_int("BACKFILL_MONTHS", 12),
            refresh_limit=_env_int("REFRESH_LIMIT", 20),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", False),
            scheduler_interval_hours=_env_float("SCHEDULER_INTERVAL_HOURS", 6.0),
        )

    @property
    def secondary_store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


settings = Settings.from_env()
