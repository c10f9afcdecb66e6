from deal_tracker.notifications.slack import (
    SlackNotifier,
    batch_deals,
    cardmarket_url,
    format_deal_batch,
    format_deal_message,
    format_failure_alert,
)

__all__ = [
    "SlackNotifier",
    "batch_deals",
    "cardmarket_url",
    "format_deal_batch",
    "format_deal_message",
    "format_failure_alert",
]
