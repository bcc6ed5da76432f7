"""Tests for the valuation engine."""

from datetime import datetime

import pytest

from deal_finder.analysis.engine import ValuationEngine, naive_market_rent
from deal_finder.analysis.models import AnalysisMethod, EvidenceKind, MatchTier, RegistryRecord, ValueClass
from deal_finder.errors import InvalidEstimate
from deal_finder.validation import PropertyKind
from tests.conftest import StubOracle, make_listing


@pytest.fixture
def engine():
    return ValuationEngine()


@pytest.fixture
def snapshot():
    target = make_listing("A", price=3000)
    comps = [make_listing(f"C{i}", price=4000) for i in range(4)]
    return target, [target] + comps


class TestEvaluate:
    """End-to-end evaluation of a single listing."""

    def test_undervalued_exact_match(self, engine, snapshot, stub_oracle):
        target, pool = snapshot

        result = engine.evaluate(target, pool, stub_oracle, evaluated_at=datetime(2024, 1, 2))

        assert result.discount_percent == pytest.approx(25.0)
        assert result.match_tier == MatchTier.EXACT
        assert result.sample_size == 4
        assert result.confidence == 90
        assert result.threshold == 10
        assert result.is_undervalued
        assert result.is_opportunity
        assert result.method == AnalysisMethod.ORACLE
        assert result.grade == "A+"
        assert result.reasoning.startswith("Priced 25.0% below")
        assert result.evaluated_at == datetime(2024, 1, 2)

    def test_oracle_discount_is_ignored(self, engine, snapshot, stub_oracle):
        target, pool = snapshot

        result = engine.evaluate(target, pool, stub_oracle)

        assert result.oracle_hints["discount_percent"] == 99.0
        assert result.discount_percent == pytest.approx(25.0)
        assert result.oracle_hints["source"] == "stub"

    def test_heuristic_method(self, engine, snapshot):
        target, pool = snapshot

        result = engine.evaluate(target, pool, StubOracle(heuristic=True))

        assert result.method == AnalysisMethod.HEURISTIC

    def test_below_threshold_not_undervalued(self, engine, snapshot):
        target, pool = snapshot

        # 3000 vs 3200: 6.25% discount, under the low-inventory threshold of 10
        result = engine.evaluate(target, pool, StubOracle(value=3200))

        assert result.classification == ValueClass.UNDERVALUED
        assert not result.is_undervalued
        assert result.reasoning is None

    def test_overvalued_has_no_reasoning(self, engine, snapshot):
        target, pool = snapshot

        result = engine.evaluate(target, pool, StubOracle(value=2500))

        assert result.classification == ValueClass.OVERVALUED
        assert result.reasoning is None

    def test_degraded_when_oracle_down(self, engine, snapshot, failing_oracle):
        target, pool = snapshot

        result = engine.evaluate(target, pool, failing_oracle)

        assert result.method == AnalysisMethod.DEGRADED
        assert result.confidence == 0
        assert result.classification == ValueClass.FAIR
        assert not result.is_opportunity
        assert "stub oracle down" in result.error

    def test_degraded_on_invalid_estimate(self, engine, snapshot):
        target, pool = snapshot

        result = engine.evaluate(target, pool, StubOracle(error=InvalidEstimate("NaN")))

        assert result.method == AnalysisMethod.DEGRADED
        assert not result.is_opportunity

    def test_unusable_value_fails_closed(self, engine, snapshot):
        target, pool = snapshot

        result = engine.evaluate(target, pool, StubOracle(value=float("nan")))

        assert result.method == AnalysisMethod.DEGRADED
        assert result.confidence == 0
        assert result.discount_percent == 0.0
        assert not result.is_opportunity

    def test_no_comparables(self, engine, stub_oracle):
        target = make_listing("A")

        result = engine.evaluate(target, [target], stub_oracle)

        assert result.method == AnalysisMethod.NO_COMPARABLES
        assert result.confidence == 0
        assert result.match_tier is None
        assert stub_oracle.calls == []

    def test_large_inventory_uses_base_threshold(self, engine, stub_oracle):
        target = make_listing("A", price=3000)
        pool = [target] + [make_listing(f"C{i:03d}", price=4000, bedrooms=2) for i in range(250)]

        result = engine.evaluate(target, pool, stub_oracle)

        assert result.threshold == 15

    def test_stabilization_mentioned_in_reasoning(self, engine, snapshot, stub_oracle):
        target = make_listing("A", price=3000, description="Rent stabilized one bedroom")
        _, pool = snapshot

        result = engine.evaluate(target, pool, stub_oracle)

        assert result.stabilization.probability == 100
        assert "Likely rent stabilized" in result.reasoning

    def test_sale_has_no_rent_level_evidence(self, engine, stub_oracle):
        registry = [RegistryRecord(address="10 Test St", jurisdiction_code="MN")]
        target = make_listing("A", price=300000, property_kind=PropertyKind.SALE)
        pool = [target] + [
            make_listing(f"C{i}", price=900000, property_kind=PropertyKind.SALE) for i in range(4)
        ]

        result = engine.evaluate(target, pool, StubOracle(value=900000), registry)

        assert result.stabilization.has_evidence(EvidenceKind.REGISTRY_MATCH)
        assert not result.stabilization.has_evidence(EvidenceKind.RENT_LEVEL)

    def test_to_dict(self, engine, snapshot, stub_oracle):
        target, pool = snapshot

        data = engine.evaluate(target, pool, stub_oracle).to_dict()

        assert data["match_tier"] == "exact"
        assert data["discount_percent"] == 25.0
        assert data["stabilization"]["probability"] == 15


def test_naive_market_rent_excludes_target():
    target = make_listing("A", price=100)
    pool = [target, make_listing("B", price=3000), make_listing("C", price=4000), make_listing("D", bedrooms=3)]

    assert naive_market_rent(target, pool) == 3500.0
