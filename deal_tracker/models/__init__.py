"""
Models package — export all SQLAlchemy models.
"""

from deal_tracker.models.base import Base
from deal_tracker.models.card import Card
from deal_tracker.models.deal import Deal
from deal_tracker.models.price import Price
from deal_tracker.models.watchlist import WatchlistEntry

__all__ = ["Base", "Card", "Deal", "Price", "WatchlistEntry"]
