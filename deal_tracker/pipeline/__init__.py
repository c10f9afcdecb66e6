from deal_tracker.pipeline.backfill import seed_history
from deal_tracker.pipeline.catalog import CatalogRefresher
from deal_tracker.pipeline.extractor import stream_data_entries
from deal_tracker.pipeline.fetcher import BulkFetcher
from deal_tracker.pipeline.orchestrator import AttemptResult, DailyPipeline, classify_error
from deal_tracker.pipeline.prices import IngestResult, PriceIngestor, validate_price_snapshot

__all__ = [
    "AttemptResult",
    "BulkFetcher",
    "CatalogRefresher",
    "DailyPipeline",
    "IngestResult",
    "PriceIngestor",
    "classify_error",
    "seed_history",
    "stream_data_entries",
    "validate_price_snapshot",
]
