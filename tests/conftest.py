"""Shared fixtures for the test suite."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deal_finder.analysis.models import ComparableSet
from deal_finder.db.models import Base
from deal_finder.errors import OracleUnavailable
from deal_finder.oracle.base import MarketOracle, OracleEstimate
from deal_finder.validation import Listing, PropertyKind


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite engine."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()


def make_listing(
    listing_id="A",
    price=3000,
    bedrooms=1,
    bathrooms=1.0,
    neighborhood="east-village",
    property_kind=PropertyKind.RENTAL,
    address=None,
    **kwargs,
) -> Listing:
    """Factory for creating test Listing instances."""
    defaults = dict(
        listing_id=listing_id,
        address=address or f"10 Test St #{listing_id}",
        price=price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        neighborhood=neighborhood,
        property_kind=property_kind,
        fetched_at=datetime(2024, 1, 1),
    )
    defaults.update(kwargs)
    return Listing(**defaults)


def make_record(listing_id="A", price=3000, bedrooms=1, bathrooms=1, **kwargs) -> dict:
    """Factory for raw listing-source records."""
    record = {
        "id": listing_id,
        "address": f"{listing_id} Avenue A #1",
        "price": price,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
    }
    record.update(kwargs)
    return record


class StubOracle(MarketOracle):
    """Oracle returning a fixed value, or raising, while counting calls."""

    def __init__(self, value=4000.0, error=None, heuristic=False):
        self.value = value
        self.error = error
        self.heuristic = heuristic
        self.calls = []

    @property
    def name(self) -> str:
        return "stub"

    def estimate(self, target: Listing, comparables: ComparableSet) -> OracleEstimate:
        self.calls.append(target.listing_id)
        if self.error is not None:
            raise self.error
        return OracleEstimate(
            estimated_value=self.value,
            source=self.name,
            reasoning="stub estimate",
            raw_confidence_hints={"discount_percent": 99.0},
            heuristic=self.heuristic,
        )


@pytest.fixture
def stub_oracle():
    return StubOracle()


@pytest.fixture
def failing_oracle():
    return StubOracle(error=OracleUnavailable("stub oracle down"))
