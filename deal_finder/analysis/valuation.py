"""Turns a market estimate into a validated discount signal."""

import logging
import math
from typing import Any, Optional

from deal_finder.analysis.models import Valuation, ValueClass

logger = logging.getLogger(__name__)

# (minimum discount percent, grade), checked in order
GRADE_TABLE = (
    (25, "A+"),
    (20, "A"),
    (17, "A-"),
    (15, "B+"),
    (12, "B"),
    (10, "B-"),
    (7, "C+"),
    (5, "C"),
)
LOWEST_GRADE = "C-"


def grade_for_discount(discount_percent: float) -> str:
    """Letter grade for a discount; anything under 5% is a C-."""
    for minimum, grade in GRADE_TABLE:
        if discount_percent >= minimum:
            return grade
    return LOWEST_GRADE


def coerce_estimate(value: Any) -> Optional[float]:
    """Return the estimate as a finite positive float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        estimate = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(estimate) or math.isinf(estimate) or estimate <= 0:
        return None
    return estimate


def classify(discount_percent: float) -> ValueClass:
    if discount_percent > 0:
        return ValueClass.UNDERVALUED
    if discount_percent < 0:
        return ValueClass.OVERVALUED
    return ValueClass.FAIR


class ValuationCalculator:
    """Computes discount, savings and classification for one listing.

    The discount is always recomputed from the estimate; whatever discount a
    market oracle may have reported alongside it is ignored. An unusable
    estimate fails closed to a zero-confidence "fair" valuation.
    """

    def calculate(self, actual_price: int, estimate: Any, confidence: int) -> Valuation:
        market_value = coerce_estimate(estimate)
        if market_value is None:
            logger.debug(f"Unusable market estimate {estimate!r}, failing closed")
            return Valuation(
                estimated_market_value=None,
                discount_percent=0.0,
                potential_savings=0.0,
                classification=ValueClass.FAIR,
                confidence=0,
            )

        discount = (market_value - actual_price) / market_value * 100
        return Valuation(
            estimated_market_value=market_value,
            discount_percent=discount,
            potential_savings=max(market_value - actual_price, 0.0),
            classification=classify(discount),
            confidence=confidence,
            grade=grade_for_discount(discount),
        )
