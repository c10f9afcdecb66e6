"""
Deal Tracker — Configuration & Constants

Every threshold, path, URL and batch size lives here. No hardcoded values in
business logic: components read their defaults from ``settings`` and accept
explicit overrides for tests.

Usage:
    from deal_tracker.config import settings
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DealType(str, Enum):
    """Deal detection rule that produced a finding."""
    TREND_DROP = "trend_drop"             # Rule A: well below trailing average
    NEW_LOW = "new_low"                   # Rule B: strictly below every prior price
    WATCHLIST_ALERT = "watchlist_alert"   # Rule C: tighter swing on watchlisted cards


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for the deal tracker.

    Loads from environment variables (and ``.env``) with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # Storage
    # -----------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///data/tracker.db"

    # -----------------------------------------------------------------------
    # Notifications
    # -----------------------------------------------------------------------
    SLACK_WEBHOOK_URL: str = ""             # Empty disables delivery
    SLACK_MAX_DEALS_PER_MESSAGE: int = Field(default=48, ge=1, le=48)

    # -----------------------------------------------------------------------
    # Deal detection thresholds
    # -----------------------------------------------------------------------
    PRICE_FLOOR_EUR: Decimal = Field(default=Decimal("10"), ge=0)
    TREND_DROP_PCT: Decimal = Field(default=Decimal("0.15"), ge=0, le=1)
    WATCHLIST_ALERT_PCT: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    TREND_WINDOW_DAYS: int = Field(default=30, ge=1)

    # -----------------------------------------------------------------------
    # History retention
    # -----------------------------------------------------------------------
    PRICE_RETENTION_DAYS: int = Field(default=180, ge=1)

    # -----------------------------------------------------------------------
    # MTGJSON feeds & local snapshot cache
    # -----------------------------------------------------------------------
    ALL_IDENTIFIERS_URL: str = "https://mtgjson.com/api/v5/AllIdentifiers.json.gz"
    ALL_PRICES_TODAY_URL: str = "https://mtgjson.com/api/v5/AllPricesToday.json.gz"
    ALL_PRICES_URL: str = "https://mtgjson.com/api/v5/AllPrices.json.gz"

    IDENTIFIERS_CACHE_PATH: str = "data/cache/AllIdentifiers.json"
    ALL_PRICES_TODAY_CACHE_PATH: str = "data/cache/AllPricesToday.json"
    ALL_PRICES_CACHE_PATH: str = "data/cache/AllPrices.json"
    IDENTIFIERS_MAX_AGE_DAYS: int = Field(default=30, ge=1)

    # -----------------------------------------------------------------------
    # Catalog eligibility
    # -----------------------------------------------------------------------
    TARGET_FORMAT: str = "commander"
    TARGET_LEGALITY: str = "Legal"
    PRICE_SOURCE: str = "mtgjson"

    # -----------------------------------------------------------------------
    # Batching & data quality
    # -----------------------------------------------------------------------
    CATALOG_BATCH_SIZE: int = Field(default=10_000, ge=1)
    PRICE_BATCH_SIZE: int = Field(default=50_000, ge=1)
    MIN_EXPECTED_PRICES: int = Field(default=100, ge=0)   # Below this: warn, don't fail

    # -----------------------------------------------------------------------
    # Retry policy
    # -----------------------------------------------------------------------
    FETCH_MAX_RETRIES: int = Field(default=3, ge=1)
    FETCH_BASE_BACKOFF_SECONDS: float = Field(default=2.0, ge=0)
    PIPELINE_MAX_RETRIES: int = Field(default=3, ge=1)
    PIPELINE_RETRY_DELAY_SECONDS: float = Field(default=15 * 60, ge=0)

    # -----------------------------------------------------------------------
    # Watchlist & logging
    # -----------------------------------------------------------------------
    WATCHLIST_PATH: str = "data/watchlist.json"
    LOG_LEVEL: str = "INFO"


# Singleton instance
settings = Settings()
