"""Value types shared by the valuation engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from deal_finder.validation import Listing


class MatchTier(str, Enum):
    """Strictness level of the comparable-matching rule that produced a set."""
    EXACT = "exact"
    BED_BATH = "bed_bath"
    BEDROOM_ONLY = "bedroom_only"
    FALLBACK = "fallback"


class ValueClass(str, Enum):
    """Three-way market position of a listing."""
    UNDERVALUED = "undervalued"
    OVERVALUED = "overvalued"
    FAIR = "fair"


class EvidenceKind(str, Enum):
    """Kinds of evidence behind a stabilization estimate."""
    EXPLICIT_TEXT = "explicit_text"
    REGISTRY_MATCH = "registry_match"
    BUILDING_AGE = "building_age"
    UNIT_COUNT = "unit_count"
    RENT_LEVEL = "rent_level"
    BUILDING_TYPE = "building_type"
    REGISTRY_UNAVAILABLE = "registry_unavailable"
    NO_REGISTRY_MATCH = "no_registry_match"


class AnalysisMethod(str, Enum):
    """How the market estimate behind a result was obtained."""
    ORACLE = "oracle"
    HEURISTIC = "heuristic"
    DEGRADED = "degraded"
    NO_COMPARABLES = "no_comparables"


@dataclass(frozen=True)
class ComparableSet:
    """Comparables selected for one target, tagged with the tier used."""
    tier: MatchTier
    listings: Tuple[Listing, ...]

    @property
    def count(self) -> int:
        return len(self.listings)

    @property
    def prices(self) -> list[int]:
        return [c.price for c in self.listings]


@dataclass(frozen=True)
class RegistryRecord:
    """Building from the rent-regulation registry (read-only reference data)."""
    address: str
    jurisdiction_code: str
    unit_count: Optional[int] = None
    built_year: Optional[int] = None


@dataclass(frozen=True)
class EvidenceItem:
    """One weighted piece of stabilization evidence."""
    kind: EvidenceKind
    weight: int
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "weight": self.weight, "description": self.description}


@dataclass(frozen=True)
class StabilizationAssessment:
    """Rent-regulation probability with its evidence chain (descending weight)."""
    probability: int
    evidence: Tuple[EvidenceItem, ...] = ()

    @property
    def explanation(self) -> str:
        """Human-readable explanation driven by the strongest evidence item."""
        if not self.evidence:
            return "No stabilization indicators found"
        return self.evidence[0].description

    def has_evidence(self, kind: EvidenceKind) -> bool:
        return any(item.kind == kind for item in self.evidence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "probability": self.probability,
            "explanation": self.explanation,
            "evidence": [item.to_dict() for item in self.evidence],
        }


@dataclass(frozen=True)
class Valuation:
    """Output of the valuation calculator."""
    estimated_market_value: Optional[float]
    discount_percent: float
    potential_savings: float
    classification: ValueClass
    confidence: int
    grade: Optional[str] = None

    @property
    def has_signal(self) -> bool:
        """A zero-confidence valuation means "no signal", not fair pricing."""
        return self.confidence > 0

    @property
    def needs_detailed_reasoning(self) -> bool:
        """Detailed reasoning is only worth generating for genuine opportunities."""
        return self.has_signal and self.classification == ValueClass.UNDERVALUED


@dataclass
class AnalysisResult:
    """Evaluation of one listing at one point in time."""
    listing_id: str
    evaluated_at: datetime
    actual_price: int
    estimated_market_value: Optional[float]
    discount_percent: float
    potential_savings: float
    classification: ValueClass
    confidence: int
    match_tier: Optional[MatchTier]
    sample_size: int
    threshold: float
    is_undervalued: bool
    stabilization: StabilizationAssessment
    method: AnalysisMethod
    grade: Optional[str] = None
    reasoning: Optional[str] = None
    error: Optional[str] = None
    oracle_hints: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_opportunity(self) -> bool:
        """Only confident, threshold-passing results are ever surfaced."""
        return self.is_undervalued and self.confidence > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "listing_id": self.listing_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "actual_price": self.actual_price,
            "estimated_market_value": self.estimated_market_value,
            "discount_percent": round(self.discount_percent, 2),
            "potential_savings": round(self.potential_savings, 2),
            "classification": self.classification.value,
            "confidence": self.confidence,
            "match_tier": self.match_tier.value if self.match_tier else None,
            "sample_size": self.sample_size,
            "threshold": self.threshold,
            "is_undervalued": self.is_undervalued,
            "stabilization": self.stabilization.to_dict(),
            "method": self.method.value,
            "grade": self.grade,
            "reasoning": self.reasoning,
            "error": self.error,
        }
