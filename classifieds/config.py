# classifieds/config.py
"""Runtime settings read from the environment (and `.env` via python-dotenv)."""
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _normalize_url(url: str) -> str:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


class Settings(BaseModel):
    database_url: str = "sqlite:///./classifieds.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_timeout_seconds: float = Field(10.0, gt=0)
    db_retry_tries: int = Field(3, ge=1)
    db_retry_delay: float = Field(0.2, ge=0)
    db_retry_backoff: float = Field(2.0, ge=1)
    log_level: str = "INFO"

    search_max_page_size: int = Field(50, ge=1)
    rank_featured_weight: float = 1.5
    rank_recency_weight: float = 1.0
    rank_half_life_days: float = Field(7.0, gt=0)
    rank_title_weight: float = 2.0

    listing_expiry_days: int = Field(30, ge=1)
    expiry_sweep_hours: float = Field(1.0, gt=0)

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        load_dotenv()
        env = {
            "database_url": os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL"),
            "db_pool_size": os.getenv("DB_POOL_SIZE"),
            "db_max_overflow": os.getenv("DB_MAX_OVERFLOW"),
            "db_timeout_seconds": os.getenv("DB_TIMEOUT_SECONDS"),
            "db_retry_tries": os.getenv("DB_RETRY_TRIES"),
            "db_retry_delay": os.getenv("DB_RETRY_DELAY"),
            "db_retry_backoff": os.getenv("DB_RETRY_BACKOFF"),
            "log_level": os.getenv("LOG_LEVEL"),
            "search_max_page_size": os.getenv("SEARCH_MAX_PAGE_SIZE"),
            "rank_featured_weight": os.getenv("RANK_FEATURED_WEIGHT"),
            "rank_recency_weight": os.getenv("RANK_RECENCY_WEIGHT"),
            "rank_half_life_days": os.getenv("RANK_HALF_LIFE_DAYS"),
            "rank_title_weight": os.getenv("RANK_TITLE_WEIGHT"),
            "listing_expiry_days": os.getenv("LISTING_EXPIRY_DAYS"),
            "expiry_sweep_hours": os.getenv("EXPIRY_SWEEP_HOURS"),
        }
        values = {k: v for k, v in env.items() if v is not None}
        values.update(overrides)
        settings = cls(**values)
        settings.database_url = _normalize_url(settings.database_url)
        return settings
