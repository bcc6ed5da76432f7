"""Valuation engine: comparables, market position, stabilization and thresholds."""

from .address import AddressMatcher, RegistryMatch, normalize_address
from .comparables import ComparableSelector, amenity_overlap
from .confidence import score_confidence
from .engine import ValuationEngine, naive_market_rent
from .models import (
    AnalysisMethod,
    AnalysisResult,
    ComparableSet,
    EvidenceItem,
    EvidenceKind,
    MatchTier,
    RegistryRecord,
    StabilizationAssessment,
    Valuation,
    ValueClass,
)
from .stabilization import StabilizationEstimator
from .threshold import ThresholdPolicy
from .valuation import ValuationCalculator, grade_for_discount

__all__ = [
    "AddressMatcher",
    "AnalysisMethod",
    "AnalysisResult",
    "ComparableSelector",
    "ComparableSet",
    "EvidenceItem",
    "EvidenceKind",
    "MatchTier",
    "RegistryMatch",
    "RegistryRecord",
    "StabilizationAssessment",
    "StabilizationEstimator",
    "ThresholdPolicy",
    "Valuation",
    "ValuationCalculator",
    "ValuationEngine",
    "ValueClass",
    "amenity_overlap",
    "grade_for_discount",
    "normalize_address",
    "naive_market_rent",
    "score_confidence",
]
