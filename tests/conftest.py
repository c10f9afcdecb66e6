"""
Deal Tracker — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- File-backed aiosqlite database built from the models' metadata
- Snapshot writers (plain JSON and gzip) in MTGJSON's {"meta", "data"} shape
- Helpers to seed cards and price history
- Async test support via pytest-asyncio
"""

from __future__ import annotations

import gzip
import json
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from deal_tracker.models import Base, Card, Price

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

TODAY = date(2026, 2, 23)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh SQLite file per test.

    File-backed rather than :memory: so independent sessions (refresher,
    ingestor, detector) see each other's committed rows.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Snapshot Writers
# ---------------------------------------------------------------------------


def snapshot_document(data: dict[str, Any]) -> dict[str, Any]:
    return {"meta": {"date": TODAY.isoformat(), "version": "5.2.2"}, "data": data}


@pytest.fixture
def write_snapshot(tmp_path: Path) -> Callable[..., Path]:
    """Write ``{"meta": ..., "data": data}`` as plain JSON and return its path."""

    def _write(data: dict[str, Any], name: str = "snapshot.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(snapshot_document(data)), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def gzip_snapshot() -> Callable[[dict[str, Any]], bytes]:
    """Gzip-compressed snapshot body, as served by the MTGJSON CDN."""

    def _gzip(data: dict[str, Any]) -> bytes:
        return gzip.compress(json.dumps(snapshot_document(data)).encode("utf-8"))

    return _gzip


# ---------------------------------------------------------------------------
# Record Builders
# ---------------------------------------------------------------------------


def identifiers_record(
    name: str,
    commander: str | None = "Legal",
    set_code: str = "MH2",
    mcm_id: Any = "12345",
) -> dict[str, Any]:
    legalities = {"commander": commander} if commander is not None else {}
    return {
        "name": name,
        "setCode": set_code,
        "setName": "Modern Horizons 2",
        "identifiers": {"scryfallId": f"sf-{name}", "mcmId": mcm_id, "mcmMetaId": "678"},
        "legalities": legalities,
    }


def price_record(normal: dict[str, Any], foil: dict[str, Any] | None = None) -> dict[str, Any]:
    retail: dict[str, Any] = {"normal": normal}
    if foil is not None:
        retail["foil"] = foil
    return {"paper": {"cardmarket": {"retail": retail, "currency": "EUR"}}}


# ---------------------------------------------------------------------------
# Seeding Helpers
# ---------------------------------------------------------------------------


async def add_card(
    session: AsyncSession,
    uuid: str,
    name: str | None = None,
    commander_legal: bool = True,
    set_code: str | None = "MH2",
    mcm_id: int | None = None,
) -> Card:
    card = Card(
        uuid=uuid,
        name=name or f"Card {uuid}",
        set_code=set_code,
        commander_legal=commander_legal,
        mcm_id=mcm_id,
    )
    session.add(card)
    await session.commit()
    return card


async def add_history(
    session: AsyncSession,
    uuid: str,
    prices_by_days_ago: dict[int, str | Decimal],
    today: date = TODAY,
    source: str = "mtgjson",
) -> None:
    """Insert one observation per entry, dated ``today - days_ago``."""
    for days_ago, price in prices_by_days_ago.items():
        session.add(
            Price(
                uuid=uuid,
                date=today - timedelta(days=days_ago),
                cm_trend=Decimal(str(price)),
                source=source,
            )
        )
    await session.commit()
