"""
Deal Tracker — Card Model

One printing of a card from the MTGJSON AllIdentifiers catalog. Written only
by the catalog refresher; never deleted.
"""

from __future__ import annotations

from sqlalchemy import BOOLEAN, INTEGER, Index, String, false
from sqlalchemy.orm import Mapped, mapped_column

from deal_tracker.models.base import Base


class Card(Base):
    """
    A single printing, keyed by the MTGJSON uuid.

    The name is NOT unique: one card name maps to many printings.
    """

    __tablename__ = "cards"

    uuid: Mapped[str] = mapped_column(
        String, primary_key=True, comment="MTGJSON printing uuid (immutable)"
    )
    name: Mapped[str] = mapped_column(String, nullable=False, comment="Card display name")
    set_code: Mapped[str | None] = mapped_column(String, nullable=True, comment="Set code (e.g., 'MH2')")
    set_name: Mapped[str | None] = mapped_column(String, nullable=True, comment="Set name")
    scryfall_id: Mapped[str | None] = mapped_column(String, nullable=True, comment="Scryfall card id")
    mcm_id: Mapped[int | None] = mapped_column(
        INTEGER, nullable=True, comment="Cardmarket product id"
    )
    mcm_meta_id: Mapped[int | None] = mapped_column(
        INTEGER, nullable=True, comment="Cardmarket meta-product id"
    )
    commander_legal: Mapped[bool] = mapped_column(
        BOOLEAN,
        nullable=False,
        default=False,
        server_default=false(),
        comment="Legal in the tracked format",
    )

    __table_args__ = (
        Index("idx_cards_name", "name"),
        Index("idx_cards_commander", "commander_legal"),
    )

    def __repr__(self) -> str:
        return f"<Card uuid={self.uuid!r} name={self.name!r} set={self.set_code!r}>"
