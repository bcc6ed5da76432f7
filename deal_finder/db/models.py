"""SQLAlchemy models for listing cache state, analyses and opportunities."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ListingCacheEntry(Base):
    """Last known state of a listing across fetch cycles."""
    __tablename__ = "listing_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    neighborhood: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    property_kind: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # 'rental' or 'sale'
    address: Mapped[Optional[str]] = mapped_column(String(500))
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    # 'pending', 'analyzed', 'failed', 'likely_vacated'
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)
    missed_fetches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_seen: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<ListingCacheEntry(listing_id='{self.listing_id}', price={self.price}, status='{self.status}')>"


class AnalysisRecord(Base):
    """Persisted AnalysisResult; at most one current record per listing."""
    __tablename__ = "analysis_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    neighborhood: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    property_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    evaluated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Valuation
    actual_price: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_market_value: Mapped[Optional[float]] = mapped_column(Float)
    discount_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    potential_savings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    classification: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    grade: Mapped[Optional[str]] = mapped_column(String(5))
    match_tier: Mapped[Optional[str]] = mapped_column(String(20))
    sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    is_undervalued: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    # Stabilization
    stabilization_probability: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stabilization_evidence: Mapped[Optional[list]] = mapped_column(JSON)

    reasoning: Mapped[Optional[str]] = mapped_column(Text)
    error: Mapped[Optional[str]] = mapped_column(Text)
    oracle_hints: Mapped[Optional[dict]] = mapped_column(JSON)

    def __repr__(self) -> str:
        return (
            f"<AnalysisRecord(listing_id='{self.listing_id}', "
            f"discount={self.discount_percent:.1f}%, confidence={self.confidence})>"
        )


class Opportunity(Base):
    """Published undervalued listing; retracted rather than deleted."""
    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    neighborhood: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    property_kind: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_market_value: Mapped[Optional[float]] = mapped_column(Float)
    discount_percent: Mapped[float] = mapped_column(Float, nullable=False)
    potential_savings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[Optional[str]] = mapped_column(String(5))
    stabilization_probability: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reasoning: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)  # 'active', 'retracted'
    retraction_reason: Mapped[Optional[str]] = mapped_column(String(100))
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    retracted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<Opportunity(listing_id='{self.listing_id}', status='{self.status}', discount={self.discount_percent:.1f}%)>"


class RegistryBuilding(Base):
    """Rent-regulated building from the public registry."""
    __tablename__ = "registry_buildings"
    __table_args__ = (
        UniqueConstraint("address", "jurisdiction_code", name="uq_registry_address"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    jurisdiction_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # borough / zip
    unit_count: Mapped[Optional[int]] = mapped_column(Integer)
    built_year: Mapped[Optional[int]] = mapped_column(Integer)

    def __repr__(self) -> str:
        return f"<RegistryBuilding(address='{self.address}', jurisdiction='{self.jurisdiction_code}')>"


class RunMeta(Base):
    """Metadata about analysis runs, one row per neighborhood batch."""
    __tablename__ = "run_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True, default=lambda: str(uuid.uuid4())
    )
    neighborhood: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    property_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Statistics
    listings_seen: Mapped[int] = mapped_column(Integer, default=0)
    listings_new: Mapped[int] = mapped_column(Integer, default=0)
    listings_analyzed: Mapped[int] = mapped_column(Integer, default=0)
    opportunities_published: Mapped[int] = mapped_column(Integer, default=0)
    stats: Mapped[Optional[dict]] = mapped_column(JSON)  # Full NeighborhoodResult
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<RunMeta(run_id='{self.run_id}', neighborhood='{self.neighborhood}', started_at={self.started_at})>"
