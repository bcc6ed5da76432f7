"""Deterministic median-of-comparables oracle."""

import logging
from statistics import median

from deal_finder.analysis.models import ComparableSet
from deal_finder.errors import OracleUnavailable
from deal_finder.validation import Listing

from .base import MarketOracle, OracleEstimate, validate_estimate

logger = logging.getLogger(__name__)

MIN_SQFT_SAMPLES = 3


class MedianOracle(MarketOracle):
    """Estimates market value as the median comparable price.

    When the target's square footage is known and enough comparables report
    theirs, the median price per square foot is scaled to the target instead.
    """

    def __init__(self, min_sqft_samples: int = MIN_SQFT_SAMPLES):
        self._min_sqft_samples = min_sqft_samples

    @property
    def name(self) -> str:
        return "median"

    def estimate(self, target: Listing, comparables: ComparableSet) -> OracleEstimate:
        if not comparables.count:
            raise OracleUnavailable(f"No comparables to value listing {target.listing_id}")

        with_sqft = [c for c in comparables.listings if c.sqft]
        if target.sqft and len(with_sqft) >= self._min_sqft_samples:
            price_per_sqft = median(c.price / c.sqft for c in with_sqft)
            value = price_per_sqft * target.sqft
            reasoning = (
                f"Median ${price_per_sqft:,.2f}/sqft across {len(with_sqft)} comparables "
                f"applied to {target.sqft} sqft"
            )
        else:
            value = float(median(comparables.prices))
            reasoning = f"Median price of {comparables.count} {comparables.tier.value} comparables"

        logger.debug(f"Median estimate for {target.listing_id}: {value:,.0f}")
        return validate_estimate(
            OracleEstimate(
                estimated_value=value,
                source=self.name,
                reasoning=reasoning,
                heuristic=True,
            )
        )
