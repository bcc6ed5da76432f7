"""Tests for SqlStore persistence."""

from datetime import datetime

import pytest

from deal_finder.analysis.engine import ValuationEngine
from deal_finder.cache import ListingCache
from deal_finder.db.models import AnalysisRecord, Opportunity
from deal_finder.store import SqlStore
from tests.conftest import StubOracle, make_listing


@pytest.fixture
def store(db_session):
    return SqlStore(db_session)


def _evaluate(value=4000.0, price=3000):
    target = make_listing("A", price=price)
    pool = [target] + [make_listing(f"C{i}", price=4000) for i in range(4)]
    result = ValuationEngine().evaluate(target, pool, StubOracle(value=value), evaluated_at=datetime(2024, 1, 2))
    return result, target


class TestAnalysis:
    def test_upsert_creates_then_updates(self, store, db_session):
        result, listing = _evaluate()
        store.upsert_analysis(result, listing)

        result, listing = _evaluate(value=3100)
        store.upsert_analysis(result, listing)

        records = db_session.query(AnalysisRecord).all()
        assert len(records) == 1
        assert records[0].estimated_market_value == 3100
        assert records[0].is_undervalued is False

    def test_stabilization_evidence_stored(self, store):
        result, listing = _evaluate()
        store.upsert_analysis(result, listing)

        record = store.get_analysis("A")
        assert record.stabilization_probability == 15
        assert record.stabilization_evidence[0]["kind"] == "registry_unavailable"
        assert record.match_tier == "exact"
        assert record.oracle_hints["discount_percent"] == 99.0

    def test_invalidate(self, store):
        result, listing = _evaluate()
        store.upsert_analysis(result, listing)

        assert store.invalidate_analysis("A") is True
        assert store.get_analysis("A") is None
        assert store.invalidate_analysis("A") is False


class TestOpportunities:
    """Publishing and retracting opportunities."""

    def test_publish(self, store):
        result, listing = _evaluate()

        store.publish_opportunity(result, listing)

        [opportunity] = store.active_opportunities()
        assert opportunity.listing_id == "A"
        assert opportunity.discount_percent == pytest.approx(25.0)
        assert opportunity.published_at == datetime(2024, 1, 2)

    def test_publish_rejects_non_opportunity(self, store):
        result, listing = _evaluate(value=3100)

        with pytest.raises(ValueError):
            store.publish_opportunity(result, listing)

    def test_retract(self, store, db_session):
        result, listing = _evaluate()
        store.publish_opportunity(result, listing)

        assert store.retract_opportunity("A", "vacated") is True
        assert store.retract_opportunity("A", "vacated") is False

        opportunity = db_session.query(Opportunity).one()
        assert opportunity.status == "retracted"
        assert opportunity.retraction_reason == "vacated"
        assert store.active_opportunities() == []

    def test_republish_reactivates(self, store, db_session):
        result, listing = _evaluate()
        store.publish_opportunity(result, listing)
        store.retract_opportunity("A", "price_changed")

        store.publish_opportunity(result, listing)

        opportunity = db_session.query(Opportunity).one()
        assert opportunity.status == "active"
        assert opportunity.retraction_reason is None

    def test_active_filters(self, store):
        result, listing = _evaluate()
        store.publish_opportunity(result, listing)

        assert len(store.active_opportunities(neighborhood="east-village", property_kind="rental")) == 1
        assert store.active_opportunities(neighborhood="chinatown") == []

    def test_price_change_retracts_and_invalidates(self, store):
        cache = ListingCache(store)
        cache.sync("east-village", "rental", [make_listing("A", price=3000)], now=datetime(2024, 1, 1))
        result, listing = _evaluate()
        store.upsert_analysis(result, listing)
        store.publish_opportunity(result, listing)

        diff = cache.sync("east-village", "rental", [make_listing("A", price=2900)], now=datetime(2024, 1, 4))

        assert diff.retracted == 1
        assert store.get_analysis("A") is None
        assert store.active_opportunities() == []
