"""
Deal Tracker — Slack Webhook Delivery

Renders detected deals as Slack Block Kit messages and posts them to an
incoming webhook. A message holds a header, a divider and one section per
deal; Slack caps messages at 50 blocks, so at most 48 deals fit in one.

A rejected delivery raises NotificationError so the caller leaves those
deals undelivered.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence
from urllib.parse import quote

import httpx
import structlog

from deal_tracker.config import settings
from deal_tracker.errors import NotificationError
from deal_tracker.queries import DealNotice

logger = structlog.get_logger(__name__)

DEAL_TYPE_LABELS: dict[str, str] = {
    "trend_drop": "TREND DROP",
    "new_low": "NEW LOW",
    "watchlist_alert": "WATCHLIST",
}

# Slack Block Kit: 50 blocks per message, 2 reserved for header + divider.
MAX_DEALS_PER_MESSAGE: int = 48

_CARDMARKET_PRODUCT_URL = "https://www.cardmarket.com/en/Magic/Products?idProduct={}"
_CARDMARKET_SEARCH_URL = "https://www.cardmarket.com/en/Magic/Products/Search?searchString={}"


def cardmarket_url(name: str, mcm_id: int | None = None) -> str:
    if mcm_id:
        return _CARDMARKET_PRODUCT_URL.format(mcm_id)
    return _CARDMARKET_SEARCH_URL.format(quote(name, safe=""))


def _eur(value: Decimal) -> str:
    return f"€{Decimal(value):.2f}"


def format_deal_message(deal: DealNotice) -> str:
    """One deal as Slack mrkdwn: label, name (set), prices, change, link."""
    deal_type = getattr(deal.deal_type, "value", deal.deal_type)
    label = DEAL_TYPE_LABELS.get(deal_type, deal_type)
    set_str = f" ({deal.set_code})" if deal.set_code else ""
    pct_str = f"{Decimal(deal.pct_change) * 100:.1f}%"
    url = cardmarket_url(deal.name, deal.mcm_id)

    return (
        f"*{label}:* {deal.name}{set_str}\n"
        f"{_eur(deal.current_price)} ← {_eur(deal.reference_price)} ({pct_str})\n"
        f"<{url}|View on Cardmarket>"
    )


def format_deal_batch(deals: Sequence[DealNotice]) -> dict[str, Any]:
    if not deals:
        return {"blocks": []}

    plural = "s" if len(deals) > 1 else ""
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"Deal Alert — {len(deals)} deal{plural} found",
            },
        },
        {"type": "divider"},
    ]
    for deal in deals:
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": format_deal_message(deal)}}
        )
    return {"blocks": blocks}


def format_failure_alert(last_error: str, attempts: int) -> dict[str, Any]:
    text = (
        "*Pipeline Failed*\n"
        f"All {attempts} attempts exhausted.\n"
        f"Last error: {last_error}"
    )
    return {"blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]}


def batch_deals(
    deals: Sequence[DealNotice], max_per_message: int = MAX_DEALS_PER_MESSAGE
) -> list[list[DealNotice]]:
    """Split deals, in order, into chunks of at most ``max_per_message``."""
    if max_per_message < 1:
        raise ValueError("max_per_message must be >= 1")
    size = min(max_per_message, MAX_DEALS_PER_MESSAGE)
    return [list(deals[i : i + size]) for i in range(0, len(deals), size)]


class SlackNotifier:
    """
    Posts deal batches and failure alerts to a Slack incoming webhook.

        async with SlackNotifier() as notifier:
            await notifier.send_batch(deals)

    With no webhook URL configured every send is a logged no-op that
    returns False.
    """

    def __init__(self, webhook_url: str | None = None, timeout: float = 30.0) -> None:
        self._webhook_url = webhook_url if webhook_url is not None else settings.SLACK_WEBHOOK_URL
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

        if not self.enabled:
            logger.warning(
                "slack_notifier_disabled",
                reason="SLACK_WEBHOOK_URL is empty or not set",
            )

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def __aenter__(self) -> SlackNotifier:
        if self.enabled:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_payload(self, payload: dict[str, Any]) -> bool:
        """
        POST one Block Kit payload.

        Returns:
            True when Slack accepted it, False when skipped (disabled/empty).

        Raises:
            NotificationError: transport failure or non-2xx response.
        """
        if not self.enabled:
            logger.info("slack_send_skipped", reason="no_webhook")
            return False
        if not payload.get("blocks"):
            logger.info("slack_send_skipped", reason="empty_payload")
            return False

        assert self._client is not None, "Client not initialized. Use 'async with'."
        try:
            response = await self._client.post(self._webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "slack_send_failed",
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise NotificationError(
                f"Slack webhook failed: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("slack_send_failed", error=str(e), error_type=type(e).__name__)
            raise NotificationError(f"Slack webhook failed: {e}") from e

        return True

    async def send_batch(self, deals: Sequence[DealNotice]) -> bool:
        """Deliver up to 48 deals as a single message."""
        if len(deals) > MAX_DEALS_PER_MESSAGE:
            raise ValueError(f"at most {MAX_DEALS_PER_MESSAGE} deals per message")
        sent = await self.send_payload(format_deal_batch(deals))
        if sent:
            logger.info("slack_batch_sent", deals=len(deals))
        return sent

    async def send_failure_alert(self, last_error: str, attempts: int) -> bool:
        """Terminal pipeline failure notice."""
        sent = await self.send_payload(format_failure_alert(last_error, attempts))
        if sent:
            logger.info("slack_failure_alert_sent", attempts=attempts)
        return sent
