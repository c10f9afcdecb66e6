"""
Deal Tracker — History Backfill

One-off bootstrap before the first daily run: without history, the trailing
average and previous-low rules have nothing to compare against.

    1. Refresh the catalog unconditionally
    2. Download the full AllPrices snapshot (~90 days) unless cached
    3. Upsert every dated observation for eligible cards
    4. Delete the AllPrices cache (several GB once decompressed)
    5. Sync the watchlist file into the watchlist table
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deal_tracker.config import settings
from deal_tracker.errors import ConfigurationError
from deal_tracker.pipeline.catalog import CatalogRefresher
from deal_tracker.pipeline.fetcher import BulkFetcher
from deal_tracker.pipeline.prices import PriceIngestor
from deal_tracker.watchlist import load_watchlist, sync_watchlist

logger = structlog.get_logger(__name__)


async def seed_history(
    session_factory: async_sessionmaker[AsyncSession],
    fetcher_factory: Callable[[], BulkFetcher] = BulkFetcher,
    catalog: CatalogRefresher | None = None,
    ingestor: PriceIngestor | None = None,
    prices_url: str | None = None,
    prices_cache_path: str | Path | None = None,
    watchlist_path: str | Path | None = None,
    keep_cache: bool = False,
) -> dict[str, Any]:
    """
    Load the catalog and full price history, then the watchlist.

    Returns:
        Counts per step (cards, prices stored/skipped, watchlist entries).
    """
    catalog = catalog or CatalogRefresher(session_factory, fetcher_factory)
    ingestor = ingestor or PriceIngestor(session_factory)
    url = prices_url if prices_url is not None else settings.ALL_PRICES_URL
    cache_path = Path(prices_cache_path or settings.ALL_PRICES_CACHE_PATH)

    logger.info("seed_started")
    cards = await catalog.refresh()

    if cache_path.exists():
        logger.info("seed_prices_cached", path=str(cache_path))
    else:
        if not url:
            raise ConfigurationError("ALL_PRICES_URL is not configured and no cache exists")
        async with fetcher_factory() as fetcher:
            await fetcher.download_gz(url, cache_path)

    result = await ingestor.ingest_snapshot(cache_path, history=True)

    if not keep_cache:
        cache_path.unlink(missing_ok=True)
        logger.info("seed_prices_cache_removed", path=str(cache_path))

    watchlist = load_watchlist(watchlist_path or settings.WATCHLIST_PATH)
    async with session_factory() as session:
        watchlist_entries = await sync_watchlist(session, watchlist)

    summary = {
        "cards": cards,
        "prices_stored": result.stored,
        "prices_skipped": result.skipped,
        "watchlist_entries": watchlist_entries,
    }
    logger.info("seed_complete", **summary)
    return summary
