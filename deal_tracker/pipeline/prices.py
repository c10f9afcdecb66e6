"""
Deal Tracker — Price Ingestor

Walks a price snapshot (AllPricesToday, or AllPrices for backfill) and
upserts Cardmarket retail observations for cards already in the catalog.

The eligible uuid set is loaded once up front; entries for unknown cards are
dropped before their record is even validated. Observations are committed
every ``PRICE_BATCH_SIZE`` rows. Re-ingesting the same snapshot overwrites
rows in place via the (uuid, date, source) key.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, NamedTuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deal_tracker.config import settings
from deal_tracker.errors import DataQualityError
from deal_tracker.pipeline.extractor import stream_data_entries
from deal_tracker.pipeline.records import (
    ParsedPrice,
    all_cardmarket_prices,
    latest_cardmarket_price,
    parse_cardmarket_prices,
)
from deal_tracker.queries import get_eligible_card_ids, upsert_prices

logger = structlog.get_logger(__name__)


class IngestResult(NamedTuple):
    stored: int
    skipped: int   # Entries for cards outside the eligible set


def validate_price_snapshot(path: str | Path, min_expected: int | None = None) -> int:
    """
    Count usable Cardmarket prices in a snapshot before anything is written.

    Returns:
        The number of entries carrying a usable latest price.

    Raises:
        DataQualityError: no usable price at all.
    """
    floor = min_expected if min_expected is not None else settings.MIN_EXPECTED_PRICES
    parsed = sum(1 for _ in parse_cardmarket_prices(stream_data_entries(path)))

    if parsed == 0:
        logger.error("price_snapshot_empty", path=str(path))
        raise DataQualityError(f"{path}: snapshot contains 0 Cardmarket prices")
    if parsed < floor:
        logger.warning(
            "price_snapshot_small",
            path=str(path),
            parsed=parsed,
            min_expected=floor,
        )
    else:
        logger.info("price_snapshot_validated", path=str(path), parsed=parsed)
    return parsed


def _to_row(price: ParsedPrice, source: str) -> dict[str, Any]:
    return {
        "uuid": price.uuid,
        "date": price.date,
        "cm_trend": price.cm_trend,
        "cm_foil_trend": price.cm_foil_trend,
        "source": source,
    }


class PriceIngestor:
    """
    Usage:
        ingestor = PriceIngestor(session_factory)
        result = await ingestor.ingest_snapshot(path)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int | None = None,
        source: str | None = None,
    ):
        self._session_factory = session_factory
        self._batch_size = batch_size or settings.PRICE_BATCH_SIZE
        self._source = source or settings.PRICE_SOURCE

    async def load_eligible_ids(self) -> set[str]:
        async with self._session_factory() as session:
            ids = await get_eligible_card_ids(session)
        logger.info("eligible_cards_loaded", count=len(ids))
        return ids

    async def ingest_snapshot(
        self,
        path: str | Path,
        history: bool = False,
        eligible_ids: set[str] | None = None,
    ) -> IngestResult:
        """
        Upsert prices from ``path`` for eligible cards.

        Args:
            path: Decompressed snapshot on disk.
            history: Store every dated observation (AllPrices) instead of
                only the most recent one (AllPricesToday).
            eligible_ids: Pre-loaded eligible uuid set; loaded when omitted.
        """
        if eligible_ids is None:
            eligible_ids = await self.load_eligible_ids()

        batch: list[dict[str, Any]] = []
        stored = 0
        skipped = 0

        async with self._session_factory() as session:
            try:
                for uuid, value in stream_data_entries(path):
                    if uuid not in eligible_ids:
                        skipped += 1
                        continue

                    if history:
                        observations = all_cardmarket_prices(uuid, value)
                    else:
                        latest = latest_cardmarket_price(uuid, value)
                        observations = [latest] if latest is not None else []

                    for observation in observations:
                        batch.append(_to_row(observation, self._source))

                    if len(batch) >= self._batch_size:
                        stored += await self._commit_batch(session, batch)
                        batch = []
                        logger.info("price_batch_committed", stored=stored, skipped=skipped)

                if batch:
                    stored += await self._commit_batch(session, batch)
            except Exception:
                await session.rollback()
                raise

        logger.info(
            "price_ingest_complete",
            path=str(path),
            stored=stored,
            skipped=skipped,
            history=history,
        )
        return IngestResult(stored=stored, skipped=skipped)

    @staticmethod
    async def _commit_batch(session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        count = await upsert_prices(session, rows)
        await session.commit()
        return count
