"""
SQLAlchemy 2.0 DeclarativeBase for the deal tracker.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all deal tracker database models."""
    pass
