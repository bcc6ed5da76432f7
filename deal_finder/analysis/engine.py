"""Valuation engine composing comparable selection, valuation and stabilization."""

import logging
from datetime import datetime
from statistics import median
from typing import Optional, Sequence, TYPE_CHECKING

from deal_finder.config import Settings
from deal_finder.errors import InvalidEstimate, NoComparables, OracleUnavailable
from deal_finder.validation import Listing, PropertyKind

from .comparables import ComparableSelector
from .confidence import score_confidence
from .models import (
    AnalysisMethod,
    AnalysisResult,
    ComparableSet,
    RegistryRecord,
    StabilizationAssessment,
    Valuation,
    ValueClass,
)
from .stabilization import StabilizationEstimator
from .threshold import ThresholdPolicy
from .valuation import ValuationCalculator

if TYPE_CHECKING:
    from deal_finder.oracle.base import MarketOracle

logger = logging.getLogger(__name__)


def naive_market_rent(target: Listing, pool: Sequence[Listing]) -> Optional[float]:
    """Median price of other same-kind listings with the target's bedroom count."""
    prices = [
        c.price for c in pool
        if c.listing_id != target.listing_id
        and c.property_kind == target.property_kind
        and c.bedrooms == target.bedrooms
    ]
    return float(median(prices)) if prices else None


class ValuationEngine:
    """Evaluates one listing against its neighborhood snapshot.

    The engine itself never raises for oracle or comparable problems: those
    produce zero-confidence results (method ``degraded`` or ``no_comparables``)
    which are never treated as opportunities.
    """

    def __init__(
        self,
        selector: Optional[ComparableSelector] = None,
        calculator: Optional[ValuationCalculator] = None,
        estimator: Optional[StabilizationEstimator] = None,
        policy: Optional[ThresholdPolicy] = None,
        stabilization_threshold: int = 60,
    ):
        self.selector = selector or ComparableSelector()
        self.calculator = calculator or ValuationCalculator()
        self.estimator = estimator or StabilizationEstimator()
        self.policy = policy or ThresholdPolicy()
        self.stabilization_threshold = stabilization_threshold

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValuationEngine":
        return cls(
            estimator=StabilizationEstimator(match_threshold=settings.registry_match_threshold),
            policy=ThresholdPolicy.from_settings(settings),
            stabilization_threshold=settings.stabilization_threshold,
        )

    def select_comparables(self, target: Listing, pool: Sequence[Listing]) -> ComparableSet:
        return self.selector.select(target, pool)

    def evaluate(
        self,
        target: Listing,
        pool: Sequence[Listing],
        oracle: "MarketOracle",
        registry: Optional[Sequence[RegistryRecord]] = None,
        evaluated_at: Optional[datetime] = None,
    ) -> AnalysisResult:
        """Evaluate a listing.

        Args:
            target: Listing to evaluate
            pool: Current snapshot of the target's neighborhood (may include the target)
            oracle: Market oracle producing the estimate
            registry: Building registry records, or None when unavailable
            evaluated_at: Evaluation timestamp (defaults to now)
        """
        evaluated_at = evaluated_at or datetime.utcnow()
        threshold = self.policy.threshold_for(len(pool))
        # Rent-level evidence only means something for rentals
        market_rent = None
        if target.property_kind == PropertyKind.RENTAL:
            market_rent = naive_market_rent(target, pool)
        stabilization = self.estimator.assess(target, registry, market_rent)
        try:
            comparables = self.select_comparables(target, pool)
        except NoComparables as e:
            logger.info(str(e))
            return self._unscored(
                target, evaluated_at, threshold, stabilization, None,
                AnalysisMethod.NO_COMPARABLES, str(e),
            )

        try:
            estimate = oracle.estimate(target, comparables)
        except (OracleUnavailable, InvalidEstimate) as e:
            logger.warning(f"Degraded result for listing {target.listing_id}: {e}")
            return self._unscored(
                target, evaluated_at, threshold, stabilization, comparables,
                AnalysisMethod.DEGRADED, str(e),
            )

        confidence = score_confidence(comparables.tier, comparables.count)
        valuation = self.calculator.calculate(target.price, estimate.estimated_value, confidence)
        if not valuation.has_signal:
            error = f"{estimate.source} returned unusable market value {estimate.estimated_value!r}"
            logger.warning(f"Degraded result for listing {target.listing_id}: {error}")
            return self._unscored(
                target, evaluated_at, threshold, stabilization, comparables,
                AnalysisMethod.DEGRADED, error,
            )

        is_undervalued = (
            valuation.classification == ValueClass.UNDERVALUED
            and valuation.discount_percent >= threshold
        )

        hints = dict(estimate.raw_confidence_hints)
        hints["source"] = estimate.source
        hints["fallback_used"] = estimate.fallback_used

        result = AnalysisResult(
            listing_id=target.listing_id,
            evaluated_at=evaluated_at,
            actual_price=target.price,
            estimated_market_value=valuation.estimated_market_value,
            discount_percent=valuation.discount_percent,
            potential_savings=valuation.potential_savings,
            classification=valuation.classification,
            confidence=valuation.confidence,
            match_tier=comparables.tier,
            sample_size=comparables.count,
            threshold=threshold,
            is_undervalued=is_undervalued,
            stabilization=stabilization,
            method=AnalysisMethod.HEURISTIC if estimate.heuristic else AnalysisMethod.ORACLE,
            grade=valuation.grade,
            oracle_hints=hints,
        )
        if valuation.needs_detailed_reasoning:
            result.reasoning = self._reasoning(valuation, comparables, stabilization)

        logger.debug(
            f"Listing {target.listing_id}: {valuation.classification.value} "
            f"{valuation.discount_percent:.1f}% (confidence {valuation.confidence}, "
            f"tier {comparables.tier.value}, n={comparables.count})"
        )
        return result

    def _reasoning(
        self,
        valuation: Valuation,
        comparables: ComparableSet,
        stabilization: StabilizationAssessment,
    ) -> str:
        text = (
            f"Priced {valuation.discount_percent:.1f}% below an estimated market value of "
            f"${valuation.estimated_market_value:,.0f} (grade {valuation.grade}), based on "
            f"{comparables.count} {comparables.tier.value} comparables."
        )
        if stabilization.probability >= self.stabilization_threshold:
            text += (
                f" Likely rent stabilized ({stabilization.probability}%): "
                f"{stabilization.explanation}."
            )
        return text

    @staticmethod
    def _unscored(
        target: Listing,
        evaluated_at: datetime,
        threshold: float,
        stabilization: StabilizationAssessment,
        comparables: Optional[ComparableSet],
        method: AnalysisMethod,
        error: str,
    ) -> AnalysisResult:
        return AnalysisResult(
            listing_id=target.listing_id,
            evaluated_at=evaluated_at,
            actual_price=target.price,
            estimated_market_value=None,
            discount_percent=0.0,
            potential_savings=0.0,
            classification=ValueClass.FAIR,
            confidence=0,
            match_tier=comparables.tier if comparables else None,
            sample_size=comparables.count if comparables else 0,
            threshold=threshold,
            is_undervalued=False,
            stabilization=stabilization,
            method=method,
            error=error,
        )
