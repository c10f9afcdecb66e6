"""
Deal Tracker — Watchlist Entry Model

User-curated printings that get the tighter watchlist alert threshold.
Read-only input to deal detection.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import DATE, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from deal_tracker.models.base import Base


class WatchlistEntry(Base):
    __tablename__ = "watchlist"

    uuid: Mapped[str] = mapped_column(
        String, ForeignKey("cards.uuid"), primary_key=True, comment="FK to cards.uuid"
    )
    added_date: Mapped[date] = mapped_column(DATE, nullable=False)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)

    def __repr__(self) -> str:
        return f"<WatchlistEntry uuid={self.uuid!r} added={self.added_date}>"
