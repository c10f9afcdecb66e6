"""
Deal Tracker — Watchlist File

The watchlist is curated by hand as JSON:

    {
      "description": "Cards to watch closely",
      "created": "2026-02-01",
      "cards": [
        {"name": "Rhystic Study", "category": "staple", "notes": "reprint risk"}
      ]
    }

Entries are matched by card name, so every printing of a listed card is
watched.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from deal_tracker.queries import get_cards_by_name, upsert_watchlist_entry

logger = structlog.get_logger(__name__)


class WatchlistCard(BaseModel):
    name: str = Field(..., min_length=1)
    category: str
    notes: str | None = None


class WatchlistFile(BaseModel):
    description: str | None = None
    created: str | None = None
    cards: list[WatchlistCard]


def load_watchlist(path: str | Path) -> list[WatchlistCard]:
    """
    Read and validate the watchlist file.

    A missing file is not an error: it logs a warning and returns [].
    Invalid JSON or a schema mismatch raises (json.JSONDecodeError /
    pydantic.ValidationError).
    """
    path = Path(path)
    if not path.exists():
        logger.warning("watchlist_file_missing", path=str(path))
        return []

    data = WatchlistFile.model_validate(json.loads(path.read_text(encoding="utf-8")))
    logger.info("watchlist_loaded", path=str(path), cards=len(data.cards))
    return data.cards


async def sync_watchlist(session: AsyncSession, cards: list[WatchlistCard]) -> int:
    """Upsert a watchlist entry for every printing of every listed card and commit."""
    written = 0
    unmatched: list[str] = []

    for card in cards:
        printings = await get_cards_by_name(session, card.name)
        if not printings:
            unmatched.append(card.name)
            continue
        for printing in printings:
            await upsert_watchlist_entry(session, printing.uuid, card.notes)
            written += 1

    await session.commit()
    logger.info(
        "watchlist_synced",
        names=len(cards),
        entries=written,
        unmatched=unmatched,
    )
    return written
