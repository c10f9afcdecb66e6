from deal_tracker.engine.deals import (
    DetectedDeal,
    PriceSummary,
    detect_deals,
    evaluate_card,
)

__all__ = [
    "DetectedDeal",
    "PriceSummary",
    "detect_deals",
    "evaluate_card",
]
