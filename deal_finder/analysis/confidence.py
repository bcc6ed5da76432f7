"""Confidence scoring from comparable tier and sample size."""

from deal_finder.analysis.models import MatchTier

MIN_CONFIDENCE = 30
MAX_CONFIDENCE = 95

TIER_BASE_CONFIDENCE = {
    MatchTier.EXACT: 90,
    MatchTier.BED_BATH: 80,
    MatchTier.BEDROOM_ONLY: 70,
    MatchTier.FALLBACK: 60,
}

# (minimum sample size, adjustment), checked in order
SAMPLE_SIZE_ADJUSTMENTS = (
    (20, 5),
    (15, 3),
    (10, 1),
)
SMALL_SAMPLE_SIZE = 5
SMALL_SAMPLE_PENALTY = -10

# An exact-tier set is already accepted at 3 comparables; it is not penalised for that size
SMALL_SAMPLE_FLOORS = {
    MatchTier.EXACT: 3,
}


def sample_size_adjustment(tier: MatchTier, sample_size: int) -> int:
    for minimum, adjustment in SAMPLE_SIZE_ADJUSTMENTS:
        if sample_size >= minimum:
            return adjustment
    floor = SMALL_SAMPLE_FLOORS.get(tier, SMALL_SAMPLE_SIZE)
    if sample_size < min(floor, SMALL_SAMPLE_SIZE):
        return SMALL_SAMPLE_PENALTY
    return 0


def score_confidence(tier: MatchTier, sample_size: int) -> int:
    """Score confidence in [30, 95] for an estimate built on the given comparables.

    >>> score_confidence(MatchTier.EXACT, 4)
    90
    >>> score_confidence(MatchTier.FALLBACK, 2)
    50
    """
    score = TIER_BASE_CONFIDENCE[tier] + sample_size_adjustment(tier, sample_size)
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, score))
