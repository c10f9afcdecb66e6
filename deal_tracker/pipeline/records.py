"""
Deal Tracker — MTGJSON Record Models

Pydantic models for the two record shapes the extractor hands us. Each raw
value is validated exactly once, here, so the refresher and ingestor never
deal with missing keys or string-typed numbers.

AllIdentifiers entry (abridged):
    {"name": ..., "setCode": ..., "setName": ...,
     "identifiers": {"scryfallId": ..., "mcmId": "123", "mcmMetaId": "456"},
     "legalities": {"commander": "Legal", ...}}

AllPrices / AllPricesToday entry (abridged):
    {"paper": {"cardmarket": {"retail": {"normal": {"2026-02-23": 15.5},
                                         "foil":   {"2026-02-23": 25.0}}}}}
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, NamedTuple

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)


def _to_int(v: Any) -> int | None:
    """Marketplace ids arrive as strings; anything non-numeric becomes None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, Decimal):
        return int(v) if v == v.to_integral_value() else None
    try:
        return int(str(v).strip())
    except ValueError:
        return None


def _to_decimal(v: Any) -> Decimal | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        price = Decimal(str(v))
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


# ---------------------------------------------------------------------------
# AllIdentifiers
# ---------------------------------------------------------------------------


class CardIdentifiers(BaseModel):
    scryfallId: str | None = None
    mcmId: int | None = None
    mcmMetaId: int | None = None

    @field_validator("mcmId", "mcmMetaId", mode="before")
    @classmethod
    def parse_marketplace_id(cls, v: Any) -> int | None:
        return _to_int(v)


class CardRecord(BaseModel):
    """One printing from AllIdentifiers."""

    name: str
    setCode: str | None = None
    setName: str | None = None
    identifiers: CardIdentifiers = Field(default_factory=CardIdentifiers)
    legalities: dict[str, str] = Field(default_factory=dict)

    @field_validator("identifiers", "legalities", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    def is_legal_in(self, fmt: str, status: str = "Legal") -> bool:
        return self.legalities.get(fmt) == status

    def to_row(self, uuid: str) -> dict[str, Any]:
        """Bind parameters for the cards upsert."""
        return {
            "uuid": uuid,
            "name": self.name,
            "set_code": self.setCode,
            "set_name": self.setName,
            "scryfall_id": self.identifiers.scryfallId,
            "mcm_id": self.identifiers.mcmId,
            "mcm_meta_id": self.identifiers.mcmMetaId,
            "commander_legal": True,
        }


def parse_card_record(uuid: str, value: Any) -> CardRecord | None:
    try:
        return CardRecord.model_validate(value)
    except ValidationError as exc:
        logger.debug("card_record_invalid", uuid=uuid, errors=exc.error_count())
        return None


# ---------------------------------------------------------------------------
# AllPrices / AllPricesToday
# ---------------------------------------------------------------------------


class PriceSeries(BaseModel):
    """Date-keyed price points. Bad dates and bad prices are dropped, not fatal."""

    normal: dict[date, Decimal] = Field(default_factory=dict)
    foil: dict[date, Decimal] = Field(default_factory=dict)

    @field_validator("normal", "foil", mode="before")
    @classmethod
    def drop_invalid_points(cls, v: Any) -> dict[date, Decimal]:
        if not isinstance(v, dict):
            return {}
        points: dict[date, Decimal] = {}
        for raw_date, raw_price in v.items():
            try:
                day = date.fromisoformat(str(raw_date))
            except ValueError:
                continue
            price = _to_decimal(raw_price)
            if price is not None:
                points[day] = price
        return points


class ProviderPrices(BaseModel):
    retail: PriceSeries | None = None
    buylist: PriceSeries | None = None


class PaperPrices(BaseModel):
    cardmarket: ProviderPrices | None = None


class PriceEntry(BaseModel):
    paper: PaperPrices | None = None

    @property
    def cardmarket_retail(self) -> PriceSeries | None:
        if self.paper is None or self.paper.cardmarket is None:
            return None
        return self.paper.cardmarket.retail


class ParsedPrice(NamedTuple):
    """One Cardmarket retail observation ready for the prices upsert."""

    uuid: str
    date: date
    cm_trend: Decimal
    cm_foil_trend: Decimal | None = None


def _retail_series(uuid: str, value: Any) -> PriceSeries | None:
    try:
        entry = PriceEntry.model_validate(value)
    except ValidationError as exc:
        logger.debug("price_record_invalid", uuid=uuid, errors=exc.error_count())
        return None
    series = entry.cardmarket_retail
    if series is None or not series.normal:
        return None
    return series


def latest_cardmarket_price(uuid: str, value: Any) -> ParsedPrice | None:
    """The most recent dated normal price, with the foil price for that date."""
    series = _retail_series(uuid, value)
    if series is None:
        return None
    latest = max(series.normal)
    return ParsedPrice(uuid, latest, series.normal[latest], series.foil.get(latest))


def all_cardmarket_prices(uuid: str, value: Any) -> list[ParsedPrice]:
    """Every dated normal price in the record (full-history snapshots)."""
    series = _retail_series(uuid, value)
    if series is None:
        return []
    return [
        ParsedPrice(uuid, day, price, series.foil.get(day))
        for day, price in sorted(series.normal.items())
    ]


def parse_cardmarket_prices(entries: Iterable[tuple[str, Any]]) -> Iterator[ParsedPrice]:
    """Latest Cardmarket retail price per entry; entries without one are skipped."""
    for uuid, value in entries:
        parsed = latest_cardmarket_price(uuid, value)
        if parsed is not None:
            yield parsed
