"""Base classes and data models for market-value oracles."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from deal_finder.analysis.models import ComparableSet
from deal_finder.analysis.valuation import coerce_estimate
from deal_finder.errors import InvalidEstimate
from deal_finder.validation import Listing


@dataclass(frozen=True)
class OracleEstimate:
    """Structured answer from a market oracle.

    Only ``estimated_value`` feeds the valuation; any discount the oracle
    reports alongside it is kept in ``raw_confidence_hints`` for auditing and
    never used.
    """
    estimated_value: float
    source: str
    reasoning: Optional[str] = None
    raw_confidence_hints: Dict[str, Any] = field(default_factory=dict)
    heuristic: bool = False
    fallback_used: bool = False


def validate_estimate(estimate: OracleEstimate) -> OracleEstimate:
    """Ensure the estimate carries a finite, positive market value.

    Raises:
        InvalidEstimate: If the value is missing, non-numeric, NaN or <= 0
    """
    value = coerce_estimate(estimate.estimated_value)
    if value is None:
        raise InvalidEstimate(
            f"{estimate.source} returned unusable market value {estimate.estimated_value!r}"
        )
    return estimate


class MarketOracle(ABC):
    """Abstract source of market-value estimates.

    Implementations may be slow, paid and fallible. Failures are signalled
    with OracleUnavailable or InvalidEstimate.
    """

    @abstractmethod
    def estimate(self, target: Listing, comparables: ComparableSet) -> OracleEstimate:
        """Estimate the fair market price of the target.

        Args:
            target: Listing being valued
            comparables: Comparable set selected for the target

        Returns:
            Validated estimate

        Raises:
            OracleUnavailable: If no estimate could be obtained
            InvalidEstimate: If the answer is not a usable number
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the oracle identifier."""
        pass
