"""Rent-stabilization probability from explicit text, registry data and heuristics.

Evidence is evaluated in a fixed order and the first conclusive stage wins:

1. explicit wording in the listing description
2. registry unavailable (probability held at the floor)
3. no sufficiently similar registry address (probability held at the floor)

On the floor paths circumstantial evidence is still reported, with weight 0.
4. registry match, scored from building age, size, rent level and type
"""

import dataclasses
import logging
import re
from typing import List, Optional, Sequence

from deal_finder.analysis.address import DEFAULT_MATCH_THRESHOLD, AddressMatcher, RegistryMatch
from deal_finder.analysis.models import (
    EvidenceItem,
    EvidenceKind,
    RegistryRecord,
    StabilizationAssessment,
)
from deal_finder.validation import Listing

logger = logging.getLogger(__name__)

FLOOR_PROBABILITY = 15
MAX_PROBABILITY = 95
REGISTRY_MATCH_BASE = 40

EXPLICIT_PATTERNS = (
    (re.compile(r"\brent[\s-]+stabili[sz]ed\b", re.I), 100, "Listing states the unit is rent stabilized"),
    (re.compile(r"\brent[\s-]+controlled\b", re.I), 100, "Listing states the unit is rent controlled"),
    (re.compile(r"\bpreferential\s+rent\b", re.I), 95, "Listing mentions a preferential rent"),
    (re.compile(r"\bdhcr\b", re.I), 95, "Listing references DHCR"),
    (re.compile(r"\bstabili[sz]ed\s+(?:unit|apartment)\b", re.I), 95, "Listing mentions a stabilized unit"),
    (re.compile(r"\bregulated\s+apartment\b", re.I), 95, "Listing mentions a regulated apartment"),
    (re.compile(r"\blegal\s+regulated\s+rent\b", re.I), 95, "Listing quotes a legal regulated rent"),
)

_UNITS_IN_DESCRIPTION = re.compile(r"\b(\d{1,4})[\s-]*(?:unit|apartment)s?\b(?!\s*#)", re.I)

TRADITIONAL_KEYWORDS = ("walk-up", "walkup", "prewar", "pre-war", "tenement")
LUXURY_KEYWORDS = ("luxury", "condo conversion", "new development", "new construction")

# (built before, bonus, label)
ERA_BONUSES = (
    (1947, 20, "pre-1947 construction"),
    (1974, 15, "1947-1973 construction"),
    (2020, 10, "1974-2019 construction"),
)
MIN_STABILIZED_UNITS = 6
UNIT_COUNT_BONUS = 10
RENT_LEVEL_MARGIN = 0.10
RENT_LEVEL_BONUS = 10
TRADITIONAL_BONUS = 5
LUXURY_PENALTY = -10


def match_strength_bonus(similarity: float) -> int:
    if similarity >= 0.9:
        return 35
    if similarity >= 0.7:
        return 25
    return 15


def estimate_unit_count(listing: Listing, record: Optional[RegistryRecord] = None) -> Optional[int]:
    """Units in the building from the listing, the registry record, or the description."""
    if listing.building_units:
        return listing.building_units
    if record is not None and record.unit_count:
        return record.unit_count
    match = _UNITS_IN_DESCRIPTION.search(listing.description)
    if match:
        return int(match.group(1))
    return None


def explicit_evidence(description: str) -> List[EvidenceItem]:
    items = []
    for pattern, weight, label in EXPLICIT_PATTERNS:
        if pattern.search(description):
            items.append(EvidenceItem(EvidenceKind.EXPLICIT_TEXT, weight, label))
    return items


class StabilizationEstimator:
    """Estimates the probability that a rental is rent stabilized."""

    def __init__(self, matcher: Optional[AddressMatcher] = None, match_threshold: float = DEFAULT_MATCH_THRESHOLD):
        self.matcher = matcher or AddressMatcher(threshold=match_threshold)

    def assess(
        self,
        listing: Listing,
        registry: Optional[Sequence[RegistryRecord]],
        naive_market_rent: Optional[float] = None,
    ) -> StabilizationAssessment:
        """Assess one listing.

        Args:
            listing: Listing to assess
            registry: Registry records, or None when the registry is unavailable
            naive_market_rent: Per-bedroom market estimate used for the rent-level signal
        """
        explicit = explicit_evidence(listing.description)
        if explicit:
            return self._assessment(max(item.weight for item in explicit), explicit)

        if registry is None:
            evidence = [
                EvidenceItem(
                    EvidenceKind.REGISTRY_UNAVAILABLE, FLOOR_PROBABILITY,
                    "Building registry unavailable; probability held at floor",
                )
            ]
            evidence += self._uncounted(self._circumstantial(listing, None, naive_market_rent))
            return self._assessment(FLOOR_PROBABILITY, evidence)

        match = self.matcher.best_match(listing.address, registry)
        if match is None:
            evidence = [
                EvidenceItem(
                    EvidenceKind.NO_REGISTRY_MATCH, FLOOR_PROBABILITY,
                    "No registered building at this address; probability held at floor",
                )
            ]
            evidence += self._uncounted(self._circumstantial(listing, None, naive_market_rent))
            return self._assessment(FLOOR_PROBABILITY, evidence)

        evidence = [self._registry_evidence(match)]
        evidence += self._circumstantial(listing, match.record, naive_market_rent)
        probability = sum(item.weight for item in evidence)
        probability = max(FLOOR_PROBABILITY, min(MAX_PROBABILITY, probability))
        logger.debug(
            f"Listing {listing.listing_id} matched registry address {match.record.address} "
            f"({match.similarity:.2f}), probability {probability}"
        )
        return self._assessment(probability, evidence)

    @staticmethod
    def _registry_evidence(match: RegistryMatch) -> EvidenceItem:
        return EvidenceItem(
            EvidenceKind.REGISTRY_MATCH,
            REGISTRY_MATCH_BASE + match_strength_bonus(match.similarity),
            f"Address matches registered building {match.record.address} "
            f"({match.similarity:.0%} similarity)",
        )

    def _circumstantial(
        self,
        listing: Listing,
        record: Optional[RegistryRecord],
        naive_market_rent: Optional[float],
    ) -> List[EvidenceItem]:
        items = []

        built_year = listing.built_year or (record.built_year if record else None)
        if built_year:
            for before, bonus, label in ERA_BONUSES:
                if built_year < before:
                    items.append(EvidenceItem(EvidenceKind.BUILDING_AGE, bonus, f"Built {built_year} ({label})"))
                    break

        units = estimate_unit_count(listing, record)
        if units is not None and units >= MIN_STABILIZED_UNITS:
            items.append(EvidenceItem(EvidenceKind.UNIT_COUNT, UNIT_COUNT_BONUS, f"Building has {units} units"))

        if naive_market_rent and listing.price <= naive_market_rent * (1 - RENT_LEVEL_MARGIN):
            below = (naive_market_rent - listing.price) / naive_market_rent * 100
            items.append(
                EvidenceItem(
                    EvidenceKind.RENT_LEVEL, RENT_LEVEL_BONUS,
                    f"Rent {below:.0f}% below the typical {listing.bedrooms}-bedroom rent",
                )
            )

        text = f"{listing.description} {' '.join(sorted(listing.amenities))}".lower()
        if any(keyword in text for keyword in LUXURY_KEYWORDS):
            items.append(EvidenceItem(EvidenceKind.BUILDING_TYPE, LUXURY_PENALTY, "Luxury or newly converted building"))
        elif any(keyword in text for keyword in TRADITIONAL_KEYWORDS):
            items.append(EvidenceItem(EvidenceKind.BUILDING_TYPE, TRADITIONAL_BONUS, "Traditional rental building"))

        return items

    @staticmethod
    def _uncounted(items: List[EvidenceItem]) -> List[EvidenceItem]:
        return [dataclasses.replace(item, weight=0) for item in items]

    @staticmethod
    def _assessment(probability: int, evidence: List[EvidenceItem]) -> StabilizationAssessment:
        ordered = sorted(evidence, key=lambda item: item.weight, reverse=True)
        return StabilizationAssessment(probability=probability, evidence=tuple(ordered))
