"""
Tests for MTGJSON record validation (deal_tracker/pipeline/records.py).

Covers:
- CardRecord: legality check, marketplace id conversion, null sub-objects
- Price series: latest date selection, foil pairing, bad points dropped
- parse_cardmarket_prices: entries without Cardmarket retail data skipped
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from deal_tracker.pipeline.records import (
    CardRecord,
    ParsedPrice,
    all_cardmarket_prices,
    latest_cardmarket_price,
    parse_card_record,
    parse_cardmarket_prices,
)
from tests.conftest import identifiers_record, price_record


# ---------------------------------------------------------------------------
# CardRecord
# ---------------------------------------------------------------------------


def test_card_record_to_row_converts_marketplace_ids() -> None:
    """String mcmId / mcmMetaId become ints."""
    record = parse_card_record("u1", identifiers_record("Sol Ring", mcm_id="4567"))

    assert record is not None
    assert record.to_row("u1") == {
        "uuid": "u1",
        "name": "Sol Ring",
        "set_code": "MH2",
        "set_name": "Modern Horizons 2",
        "scryfall_id": "sf-Sol Ring",
        "mcm_id": 4567,
        "mcm_meta_id": 678,
        "commander_legal": True,
    }


def test_non_numeric_marketplace_id_becomes_none() -> None:
    record = parse_card_record("u1", identifiers_record("Sol Ring", mcm_id="abc"))

    assert record is not None
    assert record.identifiers.mcmId is None


def test_absent_identifiers_and_legalities() -> None:
    record = parse_card_record("u1", {"name": "Plains", "identifiers": None, "legalities": None})

    assert record is not None
    assert record.identifiers.mcmId is None
    assert record.identifiers.scryfallId is None
    assert not record.is_legal_in("commander")


def test_is_legal_in_matches_exact_status() -> None:
    legal = CardRecord.model_validate(identifiers_record("Ragavan", commander="Legal"))
    banned = CardRecord.model_validate(identifiers_record("Ragavan", commander="Banned"))
    missing = CardRecord.model_validate(identifiers_record("Ragavan", commander=None))

    assert legal.is_legal_in("commander")
    assert not banned.is_legal_in("commander")
    assert not missing.is_legal_in("commander")


def test_record_without_name_is_rejected() -> None:
    assert parse_card_record("u1", {"setCode": "MH2"}) is None
    assert parse_card_record("u2", "not a record") is None


# ---------------------------------------------------------------------------
# Price entries
# ---------------------------------------------------------------------------


def test_latest_price_picks_most_recent_date_with_foil() -> None:
    value = price_record(
        {"2026-02-21": 52.0, "2026-02-23": 40.5, "2026-02-22": 50},
        foil={"2026-02-23": 80.25, "2026-02-22": 90},
    )

    parsed = latest_cardmarket_price("u1", value)

    assert parsed == ParsedPrice("u1", date(2026, 2, 23), Decimal("40.5"), Decimal("80.25"))


def test_latest_price_without_foil() -> None:
    parsed = latest_cardmarket_price("u1", price_record({"2026-02-23": 12}))

    assert parsed is not None
    assert parsed.cm_foil_trend is None
    assert parsed.cm_trend == Decimal("12")


def test_invalid_points_are_dropped() -> None:
    """Bad dates, negative and non-numeric prices are skipped, not fatal."""
    value = price_record(
        {"2026-02-20": 30, "not-a-date": 99, "2026-02-23": "n/a", "2026-02-22": -5}
    )

    parsed = latest_cardmarket_price("u1", value)

    assert parsed == ParsedPrice("u1", date(2026, 2, 20), Decimal("30"), None)


def test_entries_without_cardmarket_retail_return_none() -> None:
    assert latest_cardmarket_price("u1", {"paper": {"tcgplayer": {"retail": {}}}}) is None
    assert latest_cardmarket_price("u1", {"mtgo": {}}) is None
    assert latest_cardmarket_price("u1", price_record({})) is None
    assert latest_cardmarket_price("u1", {"paper": None}) is None


def test_all_prices_returns_every_date_sorted() -> None:
    value = price_record(
        {"2026-02-23": 40, "2026-02-21": 45, "2026-02-22": 42},
        foil={"2026-02-21": 70},
    )

    history = all_cardmarket_prices("u1", value)

    assert [p.date for p in history] == [date(2026, 2, 21), date(2026, 2, 22), date(2026, 2, 23)]
    assert history[0].cm_foil_trend == Decimal("70")
    assert history[1].cm_foil_trend is None


def test_parse_cardmarket_prices_skips_unusable_entries() -> None:
    entries = [
        ("u1", price_record({"2026-02-23": 10})),
        ("u2", {"paper": {}}),
        ("u3", price_record({"2026-02-23": 20})),
    ]

    parsed = list(parse_cardmarket_prices(entries))

    assert [p.uuid for p in parsed] == ["u1", "u3"]
