"""Persistence of cache entries, analysis results and opportunities.

``SqlStore`` owns the one place where an AnalysisResult is mapped onto
database columns (``analysis_to_record``). All writes are upserts keyed by
listing id, so re-running a batch converges to the same state.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from deal_finder.analysis.models import AnalysisResult
from deal_finder.cache import CacheEntry, CacheStatus
from deal_finder.db.models import AnalysisRecord, ListingCacheEntry, Opportunity
from deal_finder.validation import Listing

logger = logging.getLogger(__name__)


class Store(ABC):
    """Abstract persistence collaborator."""

    @abstractmethod
    def get_cache_entry(self, listing_id: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    def upsert_cache_entry(self, entry: CacheEntry) -> None:
        pass

    @abstractmethod
    def query_by_neighborhood(
        self,
        neighborhood: str,
        property_kind: str,
        statuses: Optional[Iterable[CacheStatus]] = None,
    ) -> List[CacheEntry]:
        pass

    @abstractmethod
    def upsert_analysis(self, result: AnalysisResult, listing: Listing) -> None:
        pass

    @abstractmethod
    def invalidate_analysis(self, listing_id: str) -> bool:
        pass

    @abstractmethod
    def publish_opportunity(self, result: AnalysisResult, listing: Listing) -> None:
        pass

    @abstractmethod
    def retract_opportunity(self, listing_id: str, reason: str) -> bool:
        """Retract an active opportunity; returns True if one was retracted."""
        pass

    @abstractmethod
    def active_opportunities(
        self, neighborhood: Optional[str] = None, property_kind: Optional[str] = None
    ) -> list:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass


def entry_from_row(row: ListingCacheEntry) -> CacheEntry:
    return CacheEntry(
        listing_id=row.listing_id,
        neighborhood=row.neighborhood,
        property_kind=row.property_kind,
        price=row.price,
        first_seen_at=row.first_seen_at,
        last_seen_at=row.last_seen_at,
        status=CacheStatus(row.status),
        last_analyzed_at=row.last_analyzed_at,
        missed_fetches=row.missed_fetches,
        times_seen=row.times_seen,
        address=row.address,
    )


def analysis_to_record(
    result: AnalysisResult, listing: Listing, record: Optional[AnalysisRecord] = None
) -> AnalysisRecord:
    """Map an AnalysisResult onto an AnalysisRecord row (new or existing)."""
    record = record or AnalysisRecord(listing_id=result.listing_id)
    record.neighborhood = listing.neighborhood
    record.property_kind = listing.property_kind.value
    record.address = listing.address
    record.evaluated_at = result.evaluated_at
    record.actual_price = result.actual_price
    record.estimated_market_value = result.estimated_market_value
    record.discount_percent = result.discount_percent
    record.potential_savings = result.potential_savings
    record.classification = result.classification.value
    record.confidence = result.confidence
    record.grade = result.grade
    record.match_tier = result.match_tier.value if result.match_tier else None
    record.sample_size = result.sample_size
    record.threshold = result.threshold
    record.is_undervalued = result.is_undervalued
    record.method = result.method.value
    record.stabilization_probability = result.stabilization.probability
    record.stabilization_evidence = [item.to_dict() for item in result.stabilization.evidence]
    record.reasoning = result.reasoning
    record.error = result.error
    record.oracle_hints = result.oracle_hints or None
    return record


class SqlStore(Store):
    """Store backed by a SQLAlchemy session.

    Writes are flushed, not committed; the caller decides transaction
    boundaries with ``commit`` / ``rollback``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _cache_row(self, listing_id: str) -> Optional[ListingCacheEntry]:
        stmt = select(ListingCacheEntry).where(ListingCacheEntry.listing_id == listing_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_cache_entry(self, listing_id: str) -> Optional[CacheEntry]:
        row = self._cache_row(listing_id)
        return entry_from_row(row) if row else None

    def upsert_cache_entry(self, entry: CacheEntry) -> None:
        row = self._cache_row(entry.listing_id)
        if row is None:
            row = ListingCacheEntry(listing_id=entry.listing_id)
            self.session.add(row)
        row.neighborhood = entry.neighborhood
        row.property_kind = entry.property_kind
        row.address = entry.address
        row.price = entry.price
        row.status = entry.status.value
        row.missed_fetches = entry.missed_fetches
        row.times_seen = entry.times_seen
        row.first_seen_at = entry.first_seen_at
        row.last_seen_at = entry.last_seen_at
        row.last_analyzed_at = entry.last_analyzed_at
        self.session.flush()

    def query_by_neighborhood(
        self,
        neighborhood: str,
        property_kind: str,
        statuses: Optional[Iterable[CacheStatus]] = None,
    ) -> List[CacheEntry]:
        stmt = select(ListingCacheEntry).where(
            ListingCacheEntry.neighborhood == neighborhood,
            ListingCacheEntry.property_kind == property_kind,
        )
        if statuses is not None:
            stmt = stmt.where(ListingCacheEntry.status.in_([s.value for s in statuses]))
        rows = self.session.execute(stmt.order_by(ListingCacheEntry.listing_id)).scalars().all()
        return [entry_from_row(row) for row in rows]

    def get_analysis(self, listing_id: str) -> Optional[AnalysisRecord]:
        stmt = select(AnalysisRecord).where(AnalysisRecord.listing_id == listing_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert_analysis(self, result: AnalysisResult, listing: Listing) -> None:
        record = self.get_analysis(result.listing_id)
        if record is None:
            self.session.add(analysis_to_record(result, listing))
        else:
            analysis_to_record(result, listing, record)
        self.session.flush()

    def invalidate_analysis(self, listing_id: str) -> bool:
        deleted = self.session.execute(
            delete(AnalysisRecord).where(AnalysisRecord.listing_id == listing_id)
        ).rowcount
        self.session.flush()
        if deleted:
            logger.debug(f"Invalidated stored analysis for {listing_id}")
        return bool(deleted)

    def _opportunity(self, listing_id: str) -> Optional[Opportunity]:
        stmt = select(Opportunity).where(Opportunity.listing_id == listing_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def publish_opportunity(self, result: AnalysisResult, listing: Listing) -> None:
        if not result.is_opportunity:
            raise ValueError(f"Result for {result.listing_id} does not qualify as an opportunity")

        opportunity = self._opportunity(result.listing_id)
        if opportunity is None:
            opportunity = Opportunity(listing_id=result.listing_id)
            self.session.add(opportunity)

        opportunity.neighborhood = listing.neighborhood
        opportunity.property_kind = listing.property_kind.value
        opportunity.address = listing.address
        opportunity.price = listing.price
        opportunity.estimated_market_value = result.estimated_market_value
        opportunity.discount_percent = result.discount_percent
        opportunity.potential_savings = result.potential_savings
        opportunity.confidence = result.confidence
        opportunity.grade = result.grade
        opportunity.stabilization_probability = result.stabilization.probability
        opportunity.reasoning = result.reasoning
        opportunity.status = "active"
        opportunity.retraction_reason = None
        opportunity.retracted_at = None
        opportunity.published_at = result.evaluated_at
        self.session.flush()
        logger.info(
            f"Published opportunity {result.listing_id}: "
            f"{result.discount_percent:.1f}% below market (confidence {result.confidence})"
        )

    def retract_opportunity(self, listing_id: str, reason: str) -> bool:
        opportunity = self._opportunity(listing_id)
        if opportunity is None or opportunity.status != "active":
            return False
        opportunity.status = "retracted"
        opportunity.retraction_reason = reason
        opportunity.retracted_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Retracted opportunity {listing_id} ({reason})")
        return True

    def active_opportunities(
        self, neighborhood: Optional[str] = None, property_kind: Optional[str] = None
    ) -> List[Opportunity]:
        stmt = select(Opportunity).where(Opportunity.status == "active")
        if neighborhood:
            stmt = stmt.where(Opportunity.neighborhood == neighborhood)
        if property_kind:
            stmt = stmt.where(Opportunity.property_kind == property_kind)
        stmt = stmt.order_by(Opportunity.discount_percent.desc())
        return list(self.session.execute(stmt).scalars().all())

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
