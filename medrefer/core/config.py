"""
Basic configuration

- Database location and cache tuning for the local persistence layer
- Supports environment variables (and a project-root .env file) for overrides
"""
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file early
project_root = Path(__file__).parent.parent.parent
load_dotenv(dotenv_path=project_root / '.env')

# SQLite database file (":memory:" is accepted for throwaway stores)
DATABASE_PATH = os.getenv("MEDREFER_DB_PATH", "data/medrefer.db")

# Cached entries older than this are re-read from the database (5 minutes)
CACHE_TTL_SECONDS = float(os.getenv("MEDREFER_CACHE_TTL_SECONDS", "300"))

# Writes inside this window share one listing refresh
LISTING_DEBOUNCE_SECONDS = float(os.getenv("MEDREFER_LISTING_DEBOUNCE_SECONDS", "0.25"))

# Default page size for patient listings
PAGE_SIZE = int(os.getenv("MEDREFER_PAGE_SIZE", "20"))

LOG_LEVEL = os.getenv("MEDREFER_LOG_LEVEL", "INFO").upper()


class Settings(BaseModel):
    """
    Settings bundle passed to the database bootstrap

    Defaults come from the module-level values above, so tests can build
    their own instance without touching the environment.
    """
    database_path: str              = Field(DATABASE_PATH, description="SQLite database file path")
    cache_ttl_seconds: float        = Field(CACHE_TTL_SECONDS, gt=0, description="Freshness window for cached entities")
    listing_debounce_seconds: float = Field(LISTING_DEBOUNCE_SECONDS, ge=0, description="Coalescing window for listing pushes")
    page_size: int                  = Field(PAGE_SIZE, gt=0, description="Default patient page size")
    log_level: str                  = Field(LOG_LEVEL, description="Root log level for configure_logging()")


def get_settings() -> Settings:
    return Settings()
