"""Tests for valuation, confidence scoring and the inventory threshold."""

import pytest

from deal_finder.analysis.confidence import score_confidence
from deal_finder.analysis.models import MatchTier, ValueClass
from deal_finder.analysis.threshold import ThresholdPolicy
from deal_finder.analysis.valuation import (
    ValuationCalculator,
    coerce_estimate,
    grade_for_discount,
)


@pytest.fixture
def calculator():
    return ValuationCalculator()


class TestValuationCalculator:
    """Tests for ValuationCalculator."""

    def test_undervalued(self, calculator):
        valuation = calculator.calculate(3000, 4000, 90)

        assert valuation.discount_percent == pytest.approx(25.0)
        assert valuation.potential_savings == pytest.approx(1000.0)
        assert valuation.classification == ValueClass.UNDERVALUED
        assert valuation.grade == "A+"
        assert valuation.has_signal

    def test_overvalued_has_negative_discount(self, calculator):
        valuation = calculator.calculate(5000, 4000, 80)

        assert valuation.discount_percent == pytest.approx(-25.0)
        assert valuation.potential_savings == 0.0
        assert valuation.classification == ValueClass.OVERVALUED

    def test_fair(self, calculator):
        valuation = calculator.calculate(4000, 4000, 80)

        assert valuation.discount_percent == 0.0
        assert valuation.classification == ValueClass.FAIR

    @pytest.mark.parametrize("estimate", [None, float("nan"), float("inf"), 0, -1, "abc", True])
    def test_unusable_estimate_fails_closed(self, calculator, estimate):
        valuation = calculator.calculate(3000, estimate, 90)

        assert valuation.estimated_market_value is None
        assert valuation.discount_percent == 0.0
        assert valuation.classification == ValueClass.FAIR
        assert valuation.confidence == 0
        assert not valuation.has_signal
        assert not valuation.needs_detailed_reasoning

    def test_numeric_string_estimate(self, calculator):
        assert calculator.calculate(3000, "4000", 90).discount_percent == pytest.approx(25.0)

    def test_detailed_reasoning_only_for_undervalued(self, calculator):
        assert calculator.calculate(3000, 4000, 90).needs_detailed_reasoning
        assert not calculator.calculate(5000, 4000, 90).needs_detailed_reasoning


def test_coerce_estimate():
    assert coerce_estimate(4000) == 4000.0
    assert coerce_estimate("nope") is None


@pytest.mark.parametrize(
    "discount,grade",
    [(30, "A+"), (25, "A+"), (20, "A"), (17.5, "A-"), (15, "B+"), (12, "B"),
     (10, "B-"), (7, "C+"), (5, "C"), (4.9, "C-"), (-10, "C-")],
)
def test_grades(discount, grade):
    assert grade_for_discount(discount) == grade


class TestConfidence:
    """Tests for score_confidence."""

    def test_exact_small_set_not_penalised(self):
        assert score_confidence(MatchTier.EXACT, 3) == 90
        assert score_confidence(MatchTier.EXACT, 4) == 90

    def test_sample_size_bonuses(self):
        assert score_confidence(MatchTier.EXACT, 25) == 95
        assert score_confidence(MatchTier.BED_BATH, 15) == 83
        assert score_confidence(MatchTier.BEDROOM_ONLY, 12) == 71

    def test_small_fallback_penalised(self):
        assert score_confidence(MatchTier.FALLBACK, 2) == 50

    def test_fallback_with_no_comparables_clamped(self):
        assert score_confidence(MatchTier.FALLBACK, 0) >= 30

    @pytest.mark.parametrize("tier", list(MatchTier))
    @pytest.mark.parametrize("n", [0, 1, 4, 5, 9, 10, 14, 15, 19, 20, 500])
    def test_always_in_range(self, tier, n):
        assert 30 <= score_confidence(tier, n) <= 95


class TestThresholdPolicy:
    def test_low_inventory(self):
        assert ThresholdPolicy().threshold_for(50) == 10

    def test_normal_inventory(self):
        assert ThresholdPolicy().threshold_for(500) == 15

    def test_breakpoint_is_normal(self):
        assert ThresholdPolicy().threshold_for(200) == 15

    def test_passes(self):
        policy = ThresholdPolicy()
        assert policy.passes(12, 50)
        assert not policy.passes(12, 500)
