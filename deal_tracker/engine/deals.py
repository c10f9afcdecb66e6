"""
Deal Tracker — Deal Detection Engine

For every eligible card with at least one price, compares the card's latest
observation against its own history and emits a finding per rule that fires.

Per card (one aggregate query):
    latest_price / latest_date   most recent observation
    avg_window                   mean of observations in
                                 [latest_date - window, latest_date)
    prev_low                     minimum observation before latest_date

Rules (all gated by latest_price >= price_floor):
    A  TREND_DROP       (latest - avg) / avg < -trend_drop_pct
    B  NEW_LOW          latest < prev_low (strict)
    C  WATCHLIST_ALERT  watchlisted and |latest - avg| / avg > watchlist_pct,
                        only when neither A nor B fired for the card

Windows are anchored on each card's own latest date, not the wall clock, so
replaying an old snapshot gives the same answer. Cards whose history was
pruned short simply have no average and/or no previous low.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, NamedTuple

import structlog
from sqlalchemy import Date, Numeric, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import aliased
from sqlalchemy.sql.functions import FunctionElement

from deal_tracker.config import DealType, settings
from deal_tracker.models import Card, Price

logger = structlog.get_logger(__name__)


class PriceSummary(NamedTuple):
    uuid: str
    latest_date: date
    latest_price: Decimal
    avg_window: Decimal | None
    prev_low: Decimal | None


class DetectedDeal(NamedTuple):
    uuid: str
    date: date
    deal_type: DealType
    current_price: Decimal
    reference_price: Decimal
    pct_change: Decimal


# ---------------------------------------------------------------------------
# Portable "date minus N days"
# ---------------------------------------------------------------------------


class days_before(FunctionElement):
    """``expr - N days`` as a DATE, compiled per dialect."""

    type = Date()
    inherit_cache = False
    name = "days_before"

    def __init__(self, expr: Any, days: int):
        self.days = int(days)
        super().__init__(expr)


@compiles(days_before)
def _days_before_default(element: days_before, compiler: Any, **kw: Any) -> str:
    (expr,) = list(element.clauses)
    return f"({compiler.process(expr, **kw)} - {element.days})"


@compiles(days_before, "sqlite")
def _days_before_sqlite(element: days_before, compiler: Any, **kw: Any) -> str:
    (expr,) = list(element.clauses)
    return f"date({compiler.process(expr, **kw)}, '-{element.days} days')"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def evaluate_card(
    summary: PriceSummary,
    *,
    price_floor: Decimal,
    trend_drop_pct: Decimal,
    watchlist_alert_pct: Decimal,
    watchlisted: bool = False,
) -> list[DetectedDeal]:
    """
    Apply the three rules to one card's summary.

    Returns at most one finding per rule; a watchlist alert is suppressed
    when the same move already produced a trend drop or a new low.
    """
    price = summary.latest_price
    if price < price_floor:
        return []

    findings: list[DetectedDeal] = []
    avg = summary.avg_window
    has_avg = avg is not None and avg > 0
    avg_change = (price - avg) / avg if has_avg else None  # type: ignore[operator]

    # Rule A
    if avg_change is not None and avg_change < -trend_drop_pct:
        findings.append(
            DetectedDeal(
                summary.uuid, summary.latest_date, DealType.TREND_DROP, price, avg, avg_change  # type: ignore[arg-type]
            )
        )

    # Rule B
    low = summary.prev_low
    if low is not None and price < low:
        pct = (price - low) / low if low > 0 else Decimal("0")
        findings.append(
            DetectedDeal(summary.uuid, summary.latest_date, DealType.NEW_LOW, price, low, pct)
        )

    # Rule C
    if (
        watchlisted
        and not findings
        and avg_change is not None
        and abs(avg_change) > watchlist_alert_pct
    ):
        findings.append(
            DetectedDeal(
                summary.uuid, summary.latest_date, DealType.WATCHLIST_ALERT, price, avg, avg_change  # type: ignore[arg-type]
            )
        )

    return findings


# ---------------------------------------------------------------------------
# Store query
# ---------------------------------------------------------------------------


def _summary_query(source: str, window_days: int):
    latest = (
        select(Price.uuid.label("uuid"), func.max(Price.date).label("latest_date"))
        .join(Card, Card.uuid == Price.uuid)
        .where(
            Card.commander_legal.is_(True),
            Price.cm_trend.is_not(None),
            Price.source == source,
        )
        .group_by(Price.uuid)
        .cte("latest")
    )

    current = aliased(Price, name="cur")
    hist = aliased(Price, name="hist")

    avg_window = (
        select(func.avg(hist.cm_trend, type_=Numeric(asdecimal=True)))
        .where(
            hist.uuid == latest.c.uuid,
            hist.source == source,
            hist.cm_trend.is_not(None),
            hist.date < latest.c.latest_date,
            hist.date >= days_before(latest.c.latest_date, window_days),
        )
        .scalar_subquery()
    )

    prev_low = (
        select(func.min(hist.cm_trend))
        .where(
            hist.uuid == latest.c.uuid,
            hist.source == source,
            hist.cm_trend.is_not(None),
            hist.date < latest.c.latest_date,
        )
        .scalar_subquery()
    )

    return select(
        latest.c.uuid,
        latest.c.latest_date,
        current.cm_trend,
        avg_window.label("avg_window"),
        prev_low.label("prev_low"),
    ).join(
        current,
        and_(
            current.uuid == latest.c.uuid,
            current.date == latest.c.latest_date,
            current.source == source,
        ),
    )


async def detect_deals(
    session: AsyncSession,
    *,
    watchlist_ids: set[str] | frozenset[str] = frozenset(),
    price_floor: Decimal | None = None,
    trend_drop_pct: Decimal | None = None,
    watchlist_alert_pct: Decimal | None = None,
    window_days: int | None = None,
    source: str | None = None,
) -> list[DetectedDeal]:
    """
    Run every rule over every eligible card that has a price.

    Read-only: nothing is written. Output order is unspecified.
    """
    floor = price_floor if price_floor is not None else settings.PRICE_FLOOR_EUR
    trend = trend_drop_pct if trend_drop_pct is not None else settings.TREND_DROP_PCT
    watch = (
        watchlist_alert_pct if watchlist_alert_pct is not None else settings.WATCHLIST_ALERT_PCT
    )
    window = window_days or settings.TREND_WINDOW_DAYS

    stmt = _summary_query(source or settings.PRICE_SOURCE, window)

    deals: list[DetectedDeal] = []
    cards = 0
    result = await session.execute(stmt)
    for uuid, latest_date, latest_price, avg_window, prev_low in result:
        cards += 1
        summary = PriceSummary(uuid, latest_date, latest_price, avg_window, prev_low)
        deals.extend(
            evaluate_card(
                summary,
                price_floor=floor,
                trend_drop_pct=trend,
                watchlist_alert_pct=watch,
                watchlisted=uuid in watchlist_ids,
            )
        )

    logger.info(
        "deal_detection_complete",
        cards_evaluated=cards,
        deals_found=len(deals),
        watchlist_size=len(watchlist_ids),
    )
    return deals
