"""Analysis pipeline for neighborhood listing snapshots.

This module orchestrates one fetch-and-evaluate cycle per neighborhood:
1. Fetch: page through the listing source into a complete, validated snapshot
2. Diff: sync the snapshot against the listing cache (new / changed / vacated)
3. Evaluate: value only the listings that need it, one at a time
4. Publish: persist results and publish or retract opportunities

Features:
- Oracle calls bounded to new, changed, stale or previously failed listings
- Failed or truncated snapshots never vacate listings
- Per-listing failures are recorded and the batch continues
- Explicit per-run statistics (no global counters)

Example usage:
    from deal_finder.pipeline import AnalysisPipeline

    pipeline = AnalysisPipeline.from_settings(settings)
    result = pipeline.run("east-village", PropertyKind.RENTAL)
    print(f"Analyzed: {result.analyzed}, published: {result.published}")

    stats = pipeline.run_batch(["east-village", "chinatown"])
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deal_finder.analysis import AnalysisMethod, RegistryRecord, ValuationEngine
from deal_finder.cache import ListingCache
from deal_finder.config import Settings, settings as default_settings
from deal_finder.db.models import RunMeta
from deal_finder.db.session import SessionLocal, init_db
from deal_finder.errors import IncompleteSnapshot
from deal_finder.listings import ListingSource, SnapshotFetcher, build_source
from deal_finder.oracle import MarketOracle, build_oracle
from deal_finder.registry import BuildingRegistry, SqlRegistry, load_registry
from deal_finder.store import SqlStore
from deal_finder.validation import PropertyKind

logger = logging.getLogger(__name__)


@dataclass
class NeighborhoodResult:
    """Result of one neighborhood/kind cycle."""

    run_id: Optional[str]
    neighborhood: str
    property_kind: str
    started_at: datetime
    finished_at: datetime
    success: bool
    listings_seen: int = 0
    new: int = 0
    price_changed: int = 0
    unchanged: int = 0
    stale: int = 0
    vacated: int = 0
    analyzed: int = 0
    cache_hits: int = 0
    degraded: int = 0
    no_comparables: int = 0
    oracle_failures: int = 0
    published: int = 0
    retracted: int = 0
    errors: int = 0
    threshold: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        """Calculate run duration in seconds."""
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        """Convert result to dictionary."""
        return {
            "run_id": self.run_id,
            "neighborhood": self.neighborhood,
            "property_kind": self.property_kind,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "listings_seen": self.listings_seen,
            "new": self.new,
            "price_changed": self.price_changed,
            "unchanged": self.unchanged,
            "stale": self.stale,
            "vacated": self.vacated,
            "analyzed": self.analyzed,
            "cache_hits": self.cache_hits,
            "degraded": self.degraded,
            "no_comparables": self.no_comparables,
            "oracle_failures": self.oracle_failures,
            "published": self.published,
            "retracted": self.retracted,
            "errors": self.errors,
            "threshold": self.threshold,
            "success": self.success,
            "error_message": self.error_message,
        }


@dataclass
class RunStats:
    """Totals across the neighborhoods of one batch run."""

    results: List[NeighborhoodResult] = field(default_factory=list)

    def _total(self, name: str) -> int:
        return sum(getattr(r, name) for r in self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    @property
    def analyzed(self) -> int:
        return self._total("analyzed")

    @property
    def published(self) -> int:
        return self._total("published")

    @property
    def retracted(self) -> int:
        return self._total("retracted")

    def to_dict(self) -> dict:
        totals = {
            name: self._total(name)
            for name in (
                "listings_seen", "new", "price_changed", "unchanged", "stale", "vacated",
                "analyzed", "cache_hits", "degraded", "no_comparables", "oracle_failures",
                "published", "retracted", "errors",
            )
        }
        return {
            "neighborhoods": len(self.results),
            "successful": self.successful,
            "failed": self.failed,
            "totals": totals,
            "results": [r.to_dict() for r in self.results],
        }


class AnalysisPipeline:
    """Pipeline orchestrator for listing valuation.

    This class runs the complete cycle with:
    - Paginated, retried snapshot fetching
    - Cache diffing so unchanged listings are not re-valued
    - Oracle calls serialized with a configurable delay
    - Transaction safety per listing
    """

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        oracle: MarketOracle,
        engine: Optional[ValuationEngine] = None,
        registry: Optional[BuildingRegistry] = None,
        vacate_after: int = 1,
        max_age_days: Optional[float] = 7.0,
        call_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        auto_init_db: bool = True,
    ):
        """Initialize pipeline.

        Args:
            fetcher: Snapshot fetcher for the listing source
            oracle: Market oracle (normally a ResilientOracle)
            engine: Valuation engine (creates default if None)
            registry: Building registry (reads the registry table if None)
            vacate_after: Consecutive missed snapshots before a listing is vacated
            max_age_days: Re-evaluate unchanged listings analyzed longer ago than this
                (None disables staleness)
            call_delay: Seconds to wait between oracle calls
            sleep: Sleep function used for the call delay
            auto_init_db: Whether to initialize database tables on startup
        """
        self.fetcher = fetcher
        self.oracle = oracle
        self.engine = engine or ValuationEngine()
        self.registry = registry
        self.vacate_after = vacate_after
        self.max_age_days = max_age_days
        self.call_delay = call_delay
        self._sleep = sleep

        if auto_init_db:
            init_db()
            logger.info("Database tables initialized")

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        source: Optional[ListingSource] = None,
        oracle: Optional[MarketOracle] = None,
        **kwargs,
    ) -> "AnalysisPipeline":
        """Build a pipeline from settings, optionally overriding source or oracle."""
        config = config or default_settings
        fetcher = SnapshotFetcher(
            source or build_source(config),
            page_size=config.page_size,
            max_listings=config.max_listings_per_neighborhood,
            retry_attempts=config.fetch_retry_attempts,
            backoff_min=config.fetch_backoff_min,
            backoff_max=config.fetch_backoff_max,
        )
        return cls(
            fetcher=fetcher,
            oracle=oracle or build_oracle(config),
            engine=ValuationEngine.from_settings(config),
            vacate_after=config.vacate_after_misses,
            max_age_days=config.analysis_max_age_days,
            call_delay=config.oracle_call_delay,
            **kwargs,
        )

    def run(
        self,
        neighborhood: str,
        property_kind: PropertyKind = PropertyKind.RENTAL,
        session: Optional[Session] = None,
        registry_records: Optional[Sequence[RegistryRecord]] = None,
        registry_loaded: bool = False,
    ) -> NeighborhoodResult:
        """Run one cycle for a neighborhood.

        Args:
            neighborhood: Neighborhood slug
            property_kind: rental or sale
            session: Optional database session (creates new if None)
            registry_records: Pre-loaded registry records
            registry_loaded: True when ``registry_records`` was already loaded
                this run (None then means "unavailable")

        Returns:
            NeighborhoodResult with metrics and status
        """
        property_kind = PropertyKind(property_kind)
        started_at = datetime.utcnow()
        run_id = None
        meta = None

        should_close_session = session is None
        if session is None:
            session = SessionLocal()

        result = NeighborhoodResult(
            run_id=None,
            neighborhood=neighborhood,
            property_kind=property_kind.value,
            started_at=started_at,
            finished_at=started_at,
            success=False,
        )

        try:
            meta = RunMeta(
                neighborhood=neighborhood,
                property_kind=property_kind.value,
                started_at=started_at,
            )
            session.add(meta)
            session.commit()
            run_id = meta.run_id
            result.run_id = run_id

            logger.info(f"Starting run {run_id} for {neighborhood} ({property_kind.value})")

            snapshot = self.fetcher.fetch(neighborhood, property_kind)
            result.listings_seen = snapshot.active_count
            result.threshold = self.engine.policy.threshold_for(snapshot.active_count)

            store = SqlStore(session)
            cache = ListingCache(store, vacate_after=self.vacate_after, max_age_days=self.max_age_days)
            diff = cache.sync(
                neighborhood,
                property_kind.value,
                snapshot.listings,
                complete=snapshot.complete,
                unparsed_ids=snapshot.unparsed_ids,
            )
            store.commit()

            result.new = diff.new
            result.price_changed = diff.price_changed
            result.unchanged = diff.unchanged
            result.stale = diff.stale
            result.vacated = diff.vacated
            result.cache_hits = diff.cache_hits
            result.retracted = diff.retracted

            if not registry_loaded:
                registry_records = load_registry(self.registry or SqlRegistry(session))

            self._evaluate(snapshot.listings, diff.to_analyze, store, cache, registry_records, result)

            result.success = True
            result.finished_at = datetime.utcnow()
            self._finish_meta(session, meta, result)

            logger.info(
                f"Run {run_id} completed: {result.listings_seen} listings, "
                f"{result.new} new, {result.price_changed} price changed, {result.stale} stale, "
                f"{result.vacated} vacated, {result.analyzed} analyzed "
                f"({result.cache_hits} cache hits, {result.degraded} degraded), "
                f"{result.published} published, {result.retracted} retracted"
            )
            return result

        except IncompleteSnapshot as e:
            return self._fail(session, meta, result, f"Incomplete snapshot: {e}")

        except SQLAlchemyError as e:
            logger.error(f"Run {run_id} failed: database error: {e}")
            return self._fail(session, meta, result, f"Database error: {e}")

        except Exception as e:
            logger.exception(f"Run {run_id} failed with unexpected error")
            return self._fail(session, meta, result, f"Unexpected error: {e}")

        finally:
            if should_close_session and session:
                session.close()

    def run_batch(
        self,
        neighborhoods: Optional[List[str]] = None,
        property_kinds: Optional[List[str]] = None,
    ) -> RunStats:
        """Run the pipeline for several neighborhoods and kinds.

        The building registry is loaded once for the whole batch.
        """
        neighborhoods = neighborhoods or default_settings.neighborhood_list
        property_kinds = property_kinds or default_settings.property_kind_list
        stats = RunStats()

        logger.info(
            f"Starting batch run for {len(neighborhoods)} neighborhoods: {', '.join(neighborhoods)}"
        )

        session = SessionLocal()
        try:
            registry_records = load_registry(self.registry or SqlRegistry(session))
        finally:
            session.close()

        for neighborhood in neighborhoods:
            for kind in property_kinds:
                result = self.run(
                    neighborhood,
                    PropertyKind(kind),
                    registry_records=registry_records,
                    registry_loaded=True,
                )
                stats.results.append(result)

                if not result.success:
                    logger.warning(
                        f"Run for {neighborhood} ({kind}) failed: {result.error_message}"
                    )

        logger.info(
            f"Batch run completed: {stats.successful}/{len(stats.results)} successful, "
            f"{stats.analyzed} analyzed, {stats.published} published, "
            f"{stats.retracted} retracted"
        )
        return stats

    def _evaluate(self, pool, listings, store, cache, registry_records, result) -> None:
        for i, listing in enumerate(listings):
            if i > 0 and self.call_delay > 0:
                self._sleep(self.call_delay)

            try:
                analysis = self.engine.evaluate(listing, pool, self.oracle, registry_records)
                store.upsert_analysis(analysis, listing)

                if analysis.method == AnalysisMethod.DEGRADED:
                    # Retried next cycle
                    cache.mark_failed(listing.listing_id)
                    result.degraded += 1
                    result.oracle_failures += 1
                elif analysis.method == AnalysisMethod.NO_COMPARABLES:
                    # Retried once the neighborhood has comparables
                    cache.mark_failed(listing.listing_id)
                    result.no_comparables += 1
                else:
                    cache.mark_analyzed(listing.listing_id, analysis.evaluated_at)
                    result.analyzed += 1
                    if analysis.oracle_hints.get("fallback_used"):
                        result.oracle_failures += 1

                if analysis.is_opportunity:
                    store.publish_opportunity(analysis, listing)
                    result.published += 1
                elif analysis.confidence > 0:
                    if store.retract_opportunity(listing.listing_id, "no_longer_qualifies"):
                        result.retracted += 1

                store.commit()

            except Exception as e:
                logger.error(f"Error evaluating listing {listing.listing_id}: {e}", exc_info=True)
                store.rollback()
                cache.mark_failed(listing.listing_id)
                store.commit()
                result.errors += 1

    def _finish_meta(self, session: Session, meta: Optional[RunMeta], result: NeighborhoodResult) -> None:
        if meta is None:
            return
        meta.finished_at = result.finished_at
        meta.success = result.success
        meta.listings_seen = result.listings_seen
        meta.listings_new = result.new
        meta.listings_analyzed = result.analyzed
        meta.opportunities_published = result.published
        meta.error_message = result.error_message
        meta.stats = result.to_dict()
        session.commit()

    def _fail(
        self,
        session: Session,
        meta: Optional[RunMeta],
        result: NeighborhoodResult,
        error_message: str,
    ) -> NeighborhoodResult:
        logger.error(f"Run {result.run_id} for {result.neighborhood} failed: {error_message}")
        session.rollback()
        result.success = False
        result.error_message = error_message
        result.finished_at = datetime.utcnow()

        try:
            self._finish_meta(session, meta, result)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record run metadata: {e}")
            session.rollback()

        return result
