"""Comparable selection with an ordered, escalating tier cascade."""

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from deal_finder.analysis.models import ComparableSet, MatchTier
from deal_finder.errors import NoComparables
from deal_finder.validation import Listing

logger = logging.getLogger(__name__)

MAX_BATHROOM_DIFF = 0.5
MIN_AMENITY_OVERLAP = 0.5

# Different feeds spell the same amenity differently
AMENITY_SYNONYMS = {
    "concierge": "doorman",
    "full-time doorman": "doorman",
    "part-time doorman": "doorman",
    "virtual doorman": "doorman",
    "washer/dryer": "in-unit laundry",
    "washer dryer": "in-unit laundry",
    "washer/dryer in unit": "in-unit laundry",
    "in unit laundry": "in-unit laundry",
    "w/d": "in-unit laundry",
    "laundry in building": "laundry",
    "laundry room": "laundry",
    "elevator building": "elevator",
    "lift": "elevator",
    "fitness center": "gym",
    "gym access": "gym",
    "roof deck": "roof access",
    "rooftop": "roof access",
    "dishwasher included": "dishwasher",
    "dogs allowed": "pets allowed",
    "cats allowed": "pets allowed",
    "pet friendly": "pets allowed",
    "outdoor space": "private outdoor space",
    "balcony": "private outdoor space",
    "terrace": "private outdoor space",
}


def normalize_amenities(amenities: Iterable[str]) -> FrozenSet[str]:
    """Map amenity labels onto canonical names."""
    normalized = set()
    for amenity in amenities:
        label = " ".join(amenity.lower().split())
        normalized.add(AMENITY_SYNONYMS.get(label, label))
    return frozenset(normalized)


def amenity_overlap(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard overlap of two amenity sets after synonym normalization.

    Two empty sets count as identical.
    """
    set_a = normalize_amenities(a)
    set_b = normalize_amenities(b)
    if not set_a and not set_b:
        return 1.0
    return len(set_a & set_b) / len(set_a | set_b)


def _same_bedrooms(target: Listing, candidate: Listing) -> bool:
    return candidate.bedrooms == target.bedrooms


def _same_bed_bath(target: Listing, candidate: Listing) -> bool:
    return (
        _same_bedrooms(target, candidate)
        and abs(candidate.bathrooms - target.bathrooms) <= MAX_BATHROOM_DIFF
    )


def _same_bed_bath_amenities(target: Listing, candidate: Listing) -> bool:
    return (
        _same_bed_bath(target, candidate)
        and amenity_overlap(target.amenities, candidate.amenities) >= MIN_AMENITY_OVERLAP
    )


@dataclass(frozen=True)
class TierRule:
    """One step of the cascade: a match predicate and the sample needed to accept it."""
    tier: MatchTier
    predicate: Callable[[Listing, Listing], bool]
    minimum: int


DEFAULT_TIERS = (
    TierRule(MatchTier.EXACT, _same_bed_bath_amenities, 3),
    TierRule(MatchTier.BED_BATH, _same_bed_bath, 8),
    TierRule(MatchTier.BEDROOM_ONLY, _same_bedrooms, 12),
)


class ComparableSelector:
    """Selects the comparable set for a target listing.

    Tiers are tried strictest first; the first one with enough comparables
    wins and its comparables are never mixed with a looser tier's. When no
    tier reaches its minimum the whole filtered pool is used as the fallback;
    an empty pool raises NoComparables.
    """

    def __init__(self, tiers: Optional[Sequence[TierRule]] = None):
        self.tiers = tuple(tiers) if tiers is not None else DEFAULT_TIERS

    def candidate_pool(self, target: Listing, pool: Iterable[Listing]) -> List[Listing]:
        """Drop the target itself and listings of a different kind."""
        return [
            c for c in pool
            if c.listing_id != target.listing_id
            and c.property_kind == target.property_kind
        ]

    def select(self, target: Listing, pool: Iterable[Listing]) -> ComparableSet:
        candidates = self.candidate_pool(target, pool)

        for rule in self.tiers:
            matched = [c for c in candidates if rule.predicate(target, c)]
            if len(matched) >= rule.minimum:
                logger.debug(
                    f"Listing {target.listing_id}: {len(matched)} comparables at tier {rule.tier.value}"
                )
                return self._build(rule.tier, matched)

        if not candidates:
            raise NoComparables(f"No comparable listings for {target.listing_id}")

        logger.debug(
            f"Listing {target.listing_id}: falling back to full pool of {len(candidates)}"
        )
        return self._build(MatchTier.FALLBACK, candidates)

    @staticmethod
    def _build(tier: MatchTier, listings: List[Listing]) -> ComparableSet:
        ordered = tuple(sorted(listings, key=lambda c: c.listing_id))
        return ComparableSet(tier=tier, listings=ordered)
