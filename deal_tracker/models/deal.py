"""
Deal Tracker — Deal Model

A materialized finding: one rule fired for one card on one date. Append-only
audit trail; rows are updated in place on re-detection and flagged once
delivered to the notification sink.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import BOOLEAN, DATE, INTEGER, NUMERIC, ForeignKey, Index, String, UniqueConstraint, false
from sqlalchemy.orm import Mapped, mapped_column

from deal_tracker.models.base import Base


class Deal(Base):
    """
    Keyed by (uuid, date, deal_type). ``notified`` is reset only when a
    re-detection changes current_price, so unchanged findings are not re-sent.
    """

    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String, ForeignKey("cards.uuid"), nullable=False)
    date: Mapped[datetime.date] = mapped_column(DATE, nullable=False)
    deal_type: Mapped[str] = mapped_column(
        String, nullable=False, comment="trend_drop, new_low, watchlist_alert"
    )
    current_price: Mapped[Decimal] = mapped_column(NUMERIC(10, 2), nullable=False)
    reference_price: Mapped[Decimal] = mapped_column(
        NUMERIC(12, 4), nullable=False, comment="30-day average or previous low"
    )
    pct_change: Mapped[Decimal] = mapped_column(
        NUMERIC(12, 6), nullable=False, comment="Signed fractional change vs reference"
    )
    notified: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=False, server_default=false()
    )

    __table_args__ = (
        UniqueConstraint("uuid", "date", "deal_type", name="uq_deals_uuid_date_type"),
        Index("idx_deals_date", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Deal uuid={self.uuid!r} date={self.date} type={self.deal_type!r} "
            f"price={self.current_price} pct={self.pct_change}>"
        )
