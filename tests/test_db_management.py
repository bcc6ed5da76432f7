"""Tests for database management functions."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import deal_finder.db.session as session_module
from deal_finder.db.models import (
    AnalysisRecord,
    Base,
    ListingCacheEntry,
    Opportunity,
    RegistryBuilding,
    RunMeta,
)
from deal_finder.db.session import _get_default_engine, clear_db, get_engine, reset_engine


@pytest.fixture
def populated_engine(monkeypatch):
    """In-memory database with one row in every table, set as the default engine."""
    reset_engine()
    engine = create_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add(ListingCacheEntry(listing_id="A", neighborhood="east-village", property_kind="rental", price=3000))
        session.add(AnalysisRecord(
            listing_id="A", neighborhood="east-village", property_kind="rental",
            evaluated_at=datetime(2024, 1, 1), actual_price=3000, classification="fair",
            threshold=10.0, method="oracle",
        ))
        session.add(Opportunity(
            listing_id="A", neighborhood="east-village", property_kind="rental",
            price=3000, discount_percent=25.0, confidence=90,
        ))
        session.add(RegistryBuilding(address="123 E 7th St", jurisdiction_code="MN"))
        session.add(RunMeta(neighborhood="east-village", property_kind="rental", started_at=datetime(2024, 1, 1)))
        session.commit()

    monkeypatch.setattr(session_module, "_get_default_engine", lambda: engine)
    yield engine
    reset_engine()


def test_clear_db_removes_all_data(populated_engine):
    clear_db()

    with Session(populated_engine) as session:
        for model in (ListingCacheEntry, AnalysisRecord, Opportunity, RegistryBuilding, RunMeta):
            assert session.query(model).count() == 0


def test_clear_db_preserves_schema(populated_engine):
    clear_db()

    tables = set(inspect(populated_engine).get_table_names())
    assert tables == {"listing_cache", "analysis_results", "opportunities", "registry_buildings", "run_meta"}


def test_run_id_generated(populated_engine):
    with Session(populated_engine) as session:
        meta = session.query(RunMeta).one()
        assert len(meta.run_id) == 36


def test_reset_engine_creates_new_instance(monkeypatch):
    monkeypatch.setattr(session_module.settings, "db_url", "sqlite:///:memory:")
    reset_engine()

    engine1 = _get_default_engine()
    reset_engine()
    engine2 = _get_default_engine()

    assert engine1 is not engine2
    reset_engine()


class TestGetEngine:
    def test_in_memory_uses_static_pool(self):
        engine = get_engine(db_url="sqlite:///:memory:")
        assert isinstance(engine.pool, StaticPool)

    def test_file_path(self, tmp_path):
        engine = get_engine(db_path=tmp_path / "nested" / "deal_finder.db")

        assert engine.dialect.name == "sqlite"
        assert (tmp_path / "nested").is_dir()

    def test_explicit_url(self, tmp_path):
        engine = get_engine(db_url=f"sqlite:///{tmp_path / 'x.db'}")
        assert str(engine.url).endswith("x.db")
