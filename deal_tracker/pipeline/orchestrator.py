"""
Deal Tracker — Daily Pipeline Orchestrator

One attempt runs, in order:
    1. Catalog refresh (only when the AllIdentifiers snapshot is stale)
    2. Prune price observations older than the retention window
    3. Download today's price snapshot and validate it is non-trivial
    4. Ingest prices for eligible cards
    5. Load watchlist membership
    6. Detect deals and persist them
    7. Dispatch undelivered deals, marking each batch delivered once accepted

Each attempt is wrapped so any exception becomes an AttemptResult carrying
an ErrorKind. The retry loop reads the kind: configuration problems fail at
once, everything else waits ``retry_delay`` and re-runs the whole attempt.
Nothing carries over between attempts except what was already committed.
After the last failed attempt a single best-effort failure alert is sent.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, NamedTuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deal_tracker.config import settings
from deal_tracker.engine.deals import detect_deals
from deal_tracker.errors import ErrorKind, PipelineError
from deal_tracker.notifications.slack import SlackNotifier, batch_deals
from deal_tracker.pipeline.catalog import CatalogRefresher
from deal_tracker.pipeline.fetcher import BulkFetcher
from deal_tracker.pipeline.prices import PriceIngestor, validate_price_snapshot
from deal_tracker.queries import (
    get_undelivered_deals,
    get_watchlist_ids,
    mark_deals_delivered,
    prune_prices,
    upsert_deals,
)

logger = structlog.get_logger(__name__)


class AttemptResult(NamedTuple):
    ok: bool
    kind: ErrorKind | None = None
    error: BaseException | None = None
    stats: dict[str, Any] | None = None


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception escaping an attempt to its ErrorKind."""
    if isinstance(exc, PipelineError):
        return exc.kind
    if isinstance(exc, (SQLAlchemyError, OSError)):
        return ErrorKind.PERSISTENCE
    return ErrorKind.UNEXPECTED


# Kinds that another attempt cannot fix.
TERMINAL_KINDS: frozenset[ErrorKind] = frozenset({ErrorKind.CONFIGURATION})


class DailyPipeline:
    """
    Usage:
        async with SlackNotifier() as notifier:
            pipeline = DailyPipeline(session_factory, notifier)
            exit_code = await pipeline.run()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: SlackNotifier,
        fetcher_factory: Callable[[], BulkFetcher] = BulkFetcher,
        catalog: CatalogRefresher | None = None,
        ingestor: PriceIngestor | None = None,
        prices_url: str | None = None,
        prices_cache_path: str | Path | None = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._fetcher_factory = fetcher_factory
        self._catalog = catalog or CatalogRefresher(session_factory, fetcher_factory)
        self._ingestor = ingestor or PriceIngestor(session_factory)
        self._prices_url = prices_url or settings.ALL_PRICES_TODAY_URL
        self._prices_path = Path(prices_cache_path or settings.ALL_PRICES_TODAY_CACHE_PATH)

    # -----------------------------------------------------------------------
    # One attempt
    # -----------------------------------------------------------------------

    async def run_once(self) -> dict[str, Any]:
        """Run every step once. Raises on the first failing step."""
        stats: dict[str, Any] = {}

        stats["catalog_upserted"] = await self._catalog.refresh_if_stale()

        async with self._session_factory() as session:
            stats["prices_pruned"] = await prune_prices(session, settings.PRICE_RETENTION_DAYS)

        async with self._fetcher_factory() as fetcher:
            await fetcher.download_gz(self._prices_url, self._prices_path)
        stats["prices_parsed"] = validate_price_snapshot(self._prices_path)

        eligible = await self._ingestor.load_eligible_ids()
        ingest = await self._ingestor.ingest_snapshot(self._prices_path, eligible_ids=eligible)
        stats["prices_stored"] = ingest.stored
        stats["prices_skipped"] = ingest.skipped

        async with self._session_factory() as session:
            watchlist = await get_watchlist_ids(session)
            deals = await detect_deals(session, watchlist_ids=watchlist)
            await upsert_deals(session, deals)
        stats["watchlist_size"] = len(watchlist)
        stats["deals_found"] = len(deals)

        stats["deals_delivered"] = await self.dispatch_undelivered()
        return stats

    async def dispatch_undelivered(self) -> int:
        """
        Send every undelivered deal in Slack-sized batches.

        Each batch is marked delivered right after it is accepted, so a
        failure part-way leaves only the unsent remainder for the next run.
        """
        async with self._session_factory() as session:
            pending = await get_undelivered_deals(session)
            if not pending:
                return 0

            delivered = 0
            for chunk in batch_deals(pending, settings.SLACK_MAX_DEALS_PER_MESSAGE):
                sent = await self._notifier.send_batch(chunk)
                if not sent:
                    logger.info("deal_dispatch_noop", deals=len(chunk))
                await mark_deals_delivered(session, [d.deal_id for d in chunk])
                delivered += len(chunk)

        logger.info("deal_dispatch_complete", delivered=delivered)
        return delivered

    async def run_attempt(self, attempt: int) -> AttemptResult:
        logger.info("pipeline_attempt_started", attempt=attempt)
        try:
            stats = await self.run_once()
        except Exception as exc:
            kind = classify_error(exc)
            logger.error(
                "pipeline_attempt_failed",
                attempt=attempt,
                kind=kind.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return AttemptResult(ok=False, kind=kind, error=exc)

        logger.info("pipeline_attempt_succeeded", attempt=attempt, **stats)
        return AttemptResult(ok=True, stats=stats)

    # -----------------------------------------------------------------------
    # Retry loop
    # -----------------------------------------------------------------------

    async def run(
        self,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> int:
        """
        Run attempts until one succeeds or the budget is spent.

        Returns:
            Process exit status: 0 on success, 1 after terminal failure.
        """
        max_retries = max_retries or settings.PIPELINE_MAX_RETRIES
        delay = retry_delay if retry_delay is not None else settings.PIPELINE_RETRY_DELAY_SECONDS

        result = AttemptResult(ok=False)
        attempt = 0
        for attempt in range(1, max_retries + 1):
            result = await self.run_attempt(attempt)
            if result.ok:
                return 0

            if result.kind in TERMINAL_KINDS:
                logger.error("pipeline_failed_terminal", attempt=attempt, kind=result.kind.value)
                break

            if attempt < max_retries:
                logger.warning(
                    "pipeline_retry_scheduled",
                    attempt=attempt,
                    max_retries=max_retries,
                    delay_seconds=delay,
                )
                await asyncio.sleep(delay)

        await self._report_failure(result, attempt)
        return 1

    async def _report_failure(self, result: AttemptResult, attempts: int) -> None:
        last_error = str(result.error) if result.error is not None else "unknown error"
        logger.error(
            "pipeline_failed",
            attempts=attempts,
            kind=result.kind.value if result.kind else None,
            last_error=last_error,
        )
        try:
            await self._notifier.send_failure_alert(last_error, attempts)
        except Exception as exc:
            # The pipeline error above stays the reported failure.
            logger.error(
                "pipeline_failure_alert_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
