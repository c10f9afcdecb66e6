"""
Deal Tracker — Application Entrypoint

Configures structlog, opens the database, ensures the schema exists, and
runs one of:

    run              daily ingestion + deal detection with retries (default)
    seed             one-off catalog + full price history backfill
    sync-watchlist   reload the watchlist file into the database

Run via:
    python -m deal_tracker [run|seed|sync-watchlist]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import structlog
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from deal_tracker import __version__
from deal_tracker.config import settings
from deal_tracker.models import Base
from deal_tracker.notifications.slack import SlackNotifier
from deal_tracker.pipeline.backfill import seed_history
from deal_tracker.pipeline.orchestrator import DailyPipeline
from deal_tracker.watchlist import load_watchlist, sync_watchlist


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


def _enable_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and session factory.

    SQLite URLs get WAL journaling and foreign keys on every connection and
    have their parent directory created; other URLs (asyncpg) get a pool.
    """
    logger = structlog.get_logger(__name__)
    url = make_url(database_url or settings.DATABASE_URL)
    logger.info("database_engine_initializing", backend=url.get_backend_name(), database=url.database)

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(url, echo=False)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_pragmas)
    else:
        engine = create_async_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create missing tables (no-op for an Alembic-managed database)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_daily(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with SlackNotifier() as notifier:
        pipeline = DailyPipeline(session_factory, notifier)
        return await pipeline.run()


async def run_seed(session_factory: async_sessionmaker[AsyncSession]) -> int:
    await seed_history(session_factory)
    return 0


async def run_sync_watchlist(session_factory: async_sessionmaker[AsyncSession]) -> int:
    cards = load_watchlist(settings.WATCHLIST_PATH)
    async with session_factory() as session:
        await sync_watchlist(session, cards)
    return 0


COMMANDS = {
    "run": run_daily,
    "seed": run_seed,
    "sync-watchlist": run_sync_watchlist,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deal-tracker",
        description="Cardmarket price ingestion and deal detection for Commander-legal cards.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=sorted(COMMANDS),
        help="run (default): daily pipeline; seed: history backfill; "
        "sync-watchlist: reload the watchlist file",
    )
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    return parser


async def main(argv: Sequence[str] | None = None) -> int:
    """
    Parse arguments, prepare the database and run the chosen command.

    Returns:
        Process exit status.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)
    logger.info("deal_tracker_startup", version=__version__, command=args.command)

    engine, session_factory = create_db_engine()
    try:
        await create_schema(engine)
        status = await COMMANDS[args.command](session_factory)
    except Exception as e:
        logger.error(
            "deal_tracker_fatal_error",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        status = 1
    finally:
        await engine.dispose()

    logger.info("deal_tracker_shutdown", command=args.command, exit_status=status)
    return status


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
