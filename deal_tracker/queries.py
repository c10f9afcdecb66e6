"""
Deal Tracker — Persistence Helpers

Upserts use portable ``INSERT ... ON CONFLICT`` statements (SQLite and
PostgreSQL) with typed bind parameters so dates and Decimals bind correctly
on both drivers. Each helper executes against the caller's session; the
caller owns commit boundaries unless a helper says otherwise.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, NamedTuple, Sequence

import structlog
from sqlalchemy import BOOLEAN, DATE, NUMERIC, bindparam, delete, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from deal_tracker.models import Card, Deal, Price, WatchlistEntry

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

UPSERT_CARD = text("""
    INSERT INTO cards (uuid, name, set_code, set_name, scryfall_id, mcm_id, mcm_meta_id, commander_legal)
    VALUES (:uuid, :name, :set_code, :set_name, :scryfall_id, :mcm_id, :mcm_meta_id, :commander_legal)
    ON CONFLICT (uuid) DO UPDATE SET
        name = excluded.name,
        set_code = excluded.set_code,
        set_name = excluded.set_name,
        scryfall_id = excluded.scryfall_id,
        mcm_id = excluded.mcm_id,
        mcm_meta_id = excluded.mcm_meta_id,
        commander_legal = excluded.commander_legal
""").bindparams(bindparam("commander_legal", type_=BOOLEAN()))

UPSERT_PRICE = text("""
    INSERT INTO prices (uuid, date, cm_trend, cm_foil_trend, source)
    VALUES (:uuid, :date, :cm_trend, :cm_foil_trend, :source)
    ON CONFLICT (uuid, date, source) DO UPDATE SET
        cm_trend = excluded.cm_trend,
        cm_foil_trend = excluded.cm_foil_trend
""").bindparams(
    bindparam("date", type_=DATE()),
    bindparam("cm_trend", type_=NUMERIC(10, 2)),
    bindparam("cm_foil_trend", type_=NUMERIC(10, 2)),
)

# notified is reset only when the price actually moved since the last upsert.
UPSERT_DEAL = text("""
    INSERT INTO deals (uuid, date, deal_type, current_price, reference_price, pct_change)
    VALUES (:uuid, :date, :deal_type, :current_price, :reference_price, :pct_change)
    ON CONFLICT (uuid, date, deal_type) DO UPDATE SET
        current_price = excluded.current_price,
        reference_price = excluded.reference_price,
        pct_change = excluded.pct_change,
        notified = CASE
            WHEN excluded.current_price != deals.current_price THEN FALSE
            ELSE deals.notified
        END
""").bindparams(
    bindparam("date", type_=DATE()),
    bindparam("current_price", type_=NUMERIC(10, 2)),
    bindparam("reference_price", type_=NUMERIC(12, 4)),
    bindparam("pct_change", type_=NUMERIC(12, 6)),
)

UPSERT_WATCHLIST_ENTRY = text("""
    INSERT INTO watchlist (uuid, added_date, notes)
    VALUES (:uuid, :added_date, :notes)
    ON CONFLICT (uuid) DO UPDATE SET notes = excluded.notes
""").bindparams(bindparam("added_date", type_=DATE()))


class DealNotice(NamedTuple):
    """An undelivered deal joined with the card fields the sink needs."""

    deal_id: int
    uuid: str
    name: str
    set_code: str | None
    deal_type: str
    current_price: Decimal
    reference_price: Decimal
    pct_change: Decimal
    mcm_id: int | None


# ---------------------------------------------------------------------------
# Cards & prices
# ---------------------------------------------------------------------------


async def upsert_cards(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    if not rows:
        return 0
    await session.execute(UPSERT_CARD, list(rows))
    return len(rows)


async def upsert_prices(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    if not rows:
        return 0
    await session.execute(UPSERT_PRICE, list(rows))
    return len(rows)


async def get_eligible_card_ids(session: AsyncSession) -> set[str]:
    """Uuids of every card legal in the tracked format (one query, kept in memory)."""
    result = await session.execute(select(Card.uuid).where(Card.commander_legal.is_(True)))
    return set(result.scalars().all())


async def get_cards_by_name(session: AsyncSession, name: str) -> list[Card]:
    result = await session.execute(select(Card).where(Card.name == name))
    return list(result.scalars().all())


async def prune_prices(
    session: AsyncSession,
    retention_days: int,
    today: date | None = None,
) -> int:
    """Delete observations older than the retention window and commit. Returns rows deleted."""
    today = today or datetime.now(timezone.utc).date()
    cutoff = today - timedelta(days=retention_days)
    result = await session.execute(delete(Price).where(Price.date < cutoff))
    await session.commit()
    pruned = result.rowcount or 0
    if pruned:
        logger.info("prices_pruned", rows=pruned, cutoff=cutoff.isoformat())
    return pruned


# ---------------------------------------------------------------------------
# Watchlist
# ---------------------------------------------------------------------------


async def get_watchlist_ids(session: AsyncSession) -> set[str]:
    result = await session.execute(select(WatchlistEntry.uuid))
    return set(result.scalars().all())


async def upsert_watchlist_entry(
    session: AsyncSession,
    uuid: str,
    notes: str | None = None,
    added: date | None = None,
) -> None:
    await session.execute(
        UPSERT_WATCHLIST_ENTRY,
        {
            "uuid": uuid,
            "added_date": added or datetime.now(timezone.utc).date(),
            "notes": notes,
        },
    )


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


async def upsert_deals(session: AsyncSession, deals: Iterable[Any]) -> int:
    """
    Persist detected deals keyed by (uuid, date, deal_type) and commit.

    Accepts any objects exposing uuid, date, deal_type, current_price,
    reference_price and pct_change (engine.deals.DetectedDeal).
    """
    rows = [
        {
            "uuid": d.uuid,
            "date": d.date,
            "deal_type": getattr(d.deal_type, "value", d.deal_type),
            "current_price": d.current_price,
            "reference_price": d.reference_price,
            "pct_change": d.pct_change,
        }
        for d in deals
    ]
    if rows:
        await session.execute(UPSERT_DEAL, rows)
    await session.commit()
    return len(rows)


async def get_undelivered_deals(session: AsyncSession) -> list[DealNotice]:
    """Deals not yet delivered, biggest drops first."""
    stmt = (
        select(
            Deal.id,
            Deal.uuid,
            Card.name,
            Card.set_code,
            Deal.deal_type,
            Deal.current_price,
            Deal.reference_price,
            Deal.pct_change,
            Card.mcm_id,
        )
        .join(Card, Card.uuid == Deal.uuid)
        .where(Deal.notified.is_(False))
        .order_by(Deal.pct_change.asc(), Deal.id.asc())
    )
    result = await session.execute(stmt)
    return [DealNotice(*row) for row in result.all()]


async def mark_deals_delivered(session: AsyncSession, deal_ids: Sequence[int]) -> None:
    if not deal_ids:
        return
    await session.execute(
        update(Deal).where(Deal.id.in_(list(deal_ids))).values(notified=True)
    )
    await session.commit()
