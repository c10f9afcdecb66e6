"""
Deal Tracker — Price Observation Model

One Cardmarket price reading per card per date per source. Re-ingesting the
same (uuid, date, source) overwrites the row; rows older than the retention
window are pruned by the daily pipeline.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import DATE, INTEGER, NUMERIC, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from deal_tracker.models.base import Base


class Price(Base):
    __tablename__ = "prices"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(
        String, ForeignKey("cards.uuid"), nullable=False, comment="FK to cards.uuid"
    )
    date: Mapped[datetime.date] = mapped_column(DATE, nullable=False, comment="Calendar date of the reading")
    cm_trend: Mapped[Decimal | None] = mapped_column(
        NUMERIC(10, 2), nullable=True, comment="Cardmarket trend price (EUR), retail.normal"
    )
    cm_avg: Mapped[Decimal | None] = mapped_column(
        NUMERIC(10, 2), nullable=True, comment="Cardmarket average sell price (reserved)"
    )
    cm_low: Mapped[Decimal | None] = mapped_column(
        NUMERIC(10, 2), nullable=True, comment="Cardmarket lowest listing (reserved)"
    )
    cm_foil_trend: Mapped[Decimal | None] = mapped_column(
        NUMERIC(10, 2), nullable=True, comment="Cardmarket foil trend price, retail.foil"
    )
    source: Mapped[str] = mapped_column(String, nullable=False, comment="Feed tag, e.g. 'mtgjson'")

    __table_args__ = (
        UniqueConstraint("uuid", "date", "source", name="uq_prices_uuid_date_source"),
        Index("idx_prices_uuid_date", "uuid", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Price uuid={self.uuid!r} date={self.date} "
            f"trend={self.cm_trend} foil={self.cm_foil_trend}>"
        )
