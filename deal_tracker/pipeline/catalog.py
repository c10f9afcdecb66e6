"""
Deal Tracker — Catalog Refresher

Rebuilds the ``cards`` table from the AllIdentifiers snapshot. Only printings
legal in the tracked format are kept, so downstream ingestion never sees the
other several hundred thousand catalog entries.

The snapshot is re-downloaded when missing or older than
``IDENTIFIERS_MAX_AGE_DAYS``; otherwise the refresh is skipped entirely.
Upserts commit every ``CATALOG_BATCH_SIZE`` rows, so a crash loses at most
the open batch.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deal_tracker.config import settings
from deal_tracker.errors import ConfigurationError
from deal_tracker.pipeline.extractor import stream_data_entries
from deal_tracker.pipeline.fetcher import BulkFetcher
from deal_tracker.pipeline.records import parse_card_record
from deal_tracker.queries import upsert_cards

logger = structlog.get_logger(__name__)

_SECONDS_PER_DAY = 86_400


def snapshot_age_days(path: Path, now: float | None = None) -> float | None:
    """Age of ``path`` in days from its mtime, or None when it does not exist."""
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return None
    return ((now if now is not None else time.time()) - mtime) / _SECONDS_PER_DAY


class CatalogRefresher:
    """
    Usage:
        refresher = CatalogRefresher(session_factory)
        upserted = await refresher.refresh_if_stale()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher_factory: Callable[[], BulkFetcher] = BulkFetcher,
        url: str | None = None,
        cache_path: str | Path | None = None,
        target_format: str | None = None,
        target_legality: str | None = None,
        batch_size: int | None = None,
    ):
        self._session_factory = session_factory
        self._fetcher_factory = fetcher_factory
        self._url = url if url is not None else settings.ALL_IDENTIFIERS_URL
        self._cache_path = Path(cache_path or settings.IDENTIFIERS_CACHE_PATH)
        self._format = target_format or settings.TARGET_FORMAT
        self._legality = target_legality or settings.TARGET_LEGALITY
        self._batch_size = batch_size or settings.CATALOG_BATCH_SIZE

    async def refresh_if_stale(self, max_age_days: int | None = None) -> int:
        """
        Refresh the card table when the local snapshot is missing or stale.

        Returns:
            Number of cards upserted (0 when the snapshot was fresh).

        Raises:
            ConfigurationError: the snapshot must be fetched but no URL is set.
        """
        max_age = max_age_days if max_age_days is not None else settings.IDENTIFIERS_MAX_AGE_DAYS
        age = snapshot_age_days(self._cache_path)

        if age is not None and age < max_age:
            logger.info(
                "catalog_fresh",
                path=str(self._cache_path),
                age_days=round(age, 2),
                max_age_days=max_age,
            )
            return 0

        await self._fetch()
        return await self.load_catalog(self._cache_path)

    async def refresh(self) -> int:
        """Unconditional fetch + reload."""
        await self._fetch()
        return await self.load_catalog(self._cache_path)

    async def _fetch(self) -> None:
        if not self._url:
            raise ConfigurationError(
                f"Catalog snapshot {self._cache_path} is missing or stale "
                "and ALL_IDENTIFIERS_URL is not configured"
            )
        logger.info("catalog_refresh_started", url=self._url)
        async with self._fetcher_factory() as fetcher:
            await fetcher.download_gz(self._url, self._cache_path)

    async def load_catalog(self, path: str | Path) -> int:
        """Stream ``path`` and upsert every legal printing in fixed-size batches."""
        batch: list[dict[str, Any]] = []
        upserted = 0
        skipped_invalid = 0
        seen = 0

        async with self._session_factory() as session:
            try:
                for uuid, value in stream_data_entries(path):
                    seen += 1
                    record = parse_card_record(uuid, value)
                    if record is None:
                        skipped_invalid += 1
                        continue
                    if not record.is_legal_in(self._format, self._legality):
                        continue

                    batch.append(record.to_row(uuid))
                    if len(batch) >= self._batch_size:
                        upserted += await self._commit_batch(session, batch)
                        batch = []
                        logger.info("catalog_batch_committed", upserted=upserted, seen=seen)

                if batch:
                    upserted += await self._commit_batch(session, batch)
            except Exception:
                await session.rollback()
                raise

        logger.info(
            "catalog_refresh_complete",
            upserted=upserted,
            seen=seen,
            skipped_invalid=skipped_invalid,
            format=self._format,
        )
        return upserted

    @staticmethod
    async def _commit_batch(session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        count = await upsert_cards(session, rows)
        await session.commit()
        return count
