"""Initial schema — cards, prices, watchlist, deals

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- cards (AllIdentifiers, tracked-format printings only) ---
    op.create_table(
        "cards",
        sa.Column("uuid", sa.String(), nullable=False, comment="MTGJSON printing uuid (immutable)"),
        sa.Column("name", sa.String(), nullable=False, comment="Card display name"),
        sa.Column("set_code", sa.String(), nullable=True),
        sa.Column("set_name", sa.String(), nullable=True),
        sa.Column("scryfall_id", sa.String(), nullable=True),
        sa.Column("mcm_id", sa.INTEGER(), nullable=True, comment="Cardmarket product id"),
        sa.Column("mcm_meta_id", sa.INTEGER(), nullable=True, comment="Cardmarket meta-product id"),
        sa.Column(
            "commander_legal",
            sa.BOOLEAN(),
            server_default=sa.false(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("idx_cards_name", "cards", ["name"])
    op.create_index("idx_cards_commander", "cards", ["commander_legal"])

    # --- prices (one row per uuid/date/source) ---
    op.create_table(
        "prices",
        sa.Column("id", sa.INTEGER(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(), sa.ForeignKey("cards.uuid"), nullable=False),
        sa.Column("date", sa.DATE(), nullable=False),
        sa.Column("cm_trend", sa.NUMERIC(10, 2), nullable=True, comment="Cardmarket trend price (EUR)"),
        sa.Column("cm_avg", sa.NUMERIC(10, 2), nullable=True),
        sa.Column("cm_low", sa.NUMERIC(10, 2), nullable=True),
        sa.Column("cm_foil_trend", sa.NUMERIC(10, 2), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", "date", "source", name="uq_prices_uuid_date_source"),
    )
    op.create_index("idx_prices_uuid_date", "prices", ["uuid", "date"])

    # --- watchlist ---
    op.create_table(
        "watchlist",
        sa.Column("uuid", sa.String(), sa.ForeignKey("cards.uuid"), nullable=False),
        sa.Column("added_date", sa.DATE(), nullable=False),
        sa.Column("notes", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("uuid"),
    )

    # --- deals (one row per uuid/date/deal_type) ---
    op.create_table(
        "deals",
        sa.Column("id", sa.INTEGER(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(), sa.ForeignKey("cards.uuid"), nullable=False),
        sa.Column("date", sa.DATE(), nullable=False),
        sa.Column("deal_type", sa.String(), nullable=False, comment="trend_drop, new_low, watchlist_alert"),
        sa.Column("current_price", sa.NUMERIC(10, 2), nullable=False),
        sa.Column("reference_price", sa.NUMERIC(12, 4), nullable=False),
        sa.Column("pct_change", sa.NUMERIC(12, 6), nullable=False),
        sa.Column("notified", sa.BOOLEAN(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", "date", "deal_type", name="uq_deals_uuid_date_type"),
    )
    op.create_index("idx_deals_date", "deals", ["date"])


def downgrade() -> None:
    op.drop_index("idx_deals_date", table_name="deals")
    op.drop_table("deals")
    op.drop_table("watchlist")
    op.drop_index("idx_prices_uuid_date", table_name="prices")
    op.drop_table("prices")
    op.drop_index("idx_cards_commander", table_name="cards")
    op.drop_index("idx_cards_name", table_name="cards")
    op.drop_table("cards")
