"""Cardmarket price ingestion and deal detection."""

__version__ = "0.1.0"
