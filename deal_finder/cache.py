"""Listing cache: decides which listings need (re-)evaluation each fetch cycle.

The diff between a fresh snapshot and the persisted entries is a pure function
(``diff_snapshot``); ``ListingCache`` applies it through a store and records
evaluation outcomes.

Transitions per listing:
- in snapshot, not cached          -> new (pending, needs analysis)
- in snapshot, cached, same price  -> unchanged (needs analysis unless analyzed)
- unchanged, analysis too old       -> stale (pending, re-evaluated)
- in snapshot, cached, new price   -> price_changed (pending, analysis invalidated,
                                      opportunity retracted)
- cached, absent from snapshot     -> missed; after ``vacate_after`` consecutive
                                      misses -> vacated (likely_vacated, opportunity
                                      retracted)

Misses are only counted against a complete snapshot, and never for ids whose
records were fetched but failed validation.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import AbstractSet, Dict, List, Optional, Sequence, TYPE_CHECKING

from deal_finder.validation import Listing

if TYPE_CHECKING:
    from deal_finder.store import Store

logger = logging.getLogger(__name__)


class CacheStatus(str, Enum):
    """Evaluation status of a cached listing."""
    PENDING = "pending"
    ANALYZED = "analyzed"
    FAILED = "failed"
    LIKELY_VACATED = "likely_vacated"


class Transition(str, Enum):
    """What happened to a listing between two snapshots."""
    NEW = "new"
    UNCHANGED = "unchanged"
    STALE = "stale"
    PRICE_CHANGED = "price_changed"
    MISSED = "missed"
    VACATED = "vacated"


@dataclass(frozen=True)
class CacheEntry:
    """Persisted state of one listing."""
    listing_id: str
    neighborhood: str
    property_kind: str
    price: int
    first_seen_at: datetime
    last_seen_at: datetime
    status: CacheStatus = CacheStatus.PENDING
    last_analyzed_at: Optional[datetime] = None
    missed_fetches: int = 0
    times_seen: int = 1
    address: Optional[str] = None

    @classmethod
    def from_listing(cls, listing: Listing, now: datetime) -> "CacheEntry":
        return cls(
            listing_id=listing.listing_id,
            neighborhood=listing.neighborhood,
            property_kind=listing.property_kind.value,
            price=listing.price,
            first_seen_at=now,
            last_seen_at=now,
            address=listing.address,
        )


@dataclass(frozen=True)
class CacheDecision:
    """Outcome of diffing one listing: its transition and updated entry."""
    listing_id: str
    transition: Transition
    entry: CacheEntry
    listing: Optional[Listing] = None
    previous_price: Optional[int] = None

    @property
    def needs_analysis(self) -> bool:
        return self.listing is not None and self.entry.status != CacheStatus.ANALYZED


@dataclass
class CacheDiff:
    """All decisions for one snapshot."""
    decisions: List[CacheDecision] = field(default_factory=list)
    retracted: int = 0

    def _count(self, transition: Transition) -> int:
        return sum(1 for d in self.decisions if d.transition == transition)

    @property
    def to_analyze(self) -> List[Listing]:
        return [d.listing for d in self.decisions if d.needs_analysis]

    @property
    def new(self) -> int:
        return self._count(Transition.NEW)

    @property
    def unchanged(self) -> int:
        return self._count(Transition.UNCHANGED)

    @property
    def stale(self) -> int:
        return self._count(Transition.STALE)

    @property
    def price_changed(self) -> int:
        return self._count(Transition.PRICE_CHANGED)

    @property
    def missed(self) -> int:
        return self._count(Transition.MISSED)

    @property
    def vacated(self) -> int:
        return self._count(Transition.VACATED)

    @property
    def cache_hits(self) -> int:
        """Listings seen again whose stored analysis is still valid."""
        return sum(
            1 for d in self.decisions
            if d.transition == Transition.UNCHANGED and not d.needs_analysis
        )

    def decision_for(self, listing_id: str) -> Optional[CacheDecision]:
        for d in self.decisions:
            if d.listing_id == listing_id:
                return d
        return None


def diff_snapshot(
    snapshot: Sequence[Listing],
    entries: Sequence[CacheEntry],
    now: datetime,
    vacate_after: int = 1,
    complete: bool = True,
    unparsed_ids: AbstractSet[str] = frozenset(),
    max_age: Optional[timedelta] = None,
) -> CacheDiff:
    """Diff a snapshot against the cached entries of the same neighborhood and kind.

    Args:
        snapshot: Listings fetched this cycle
        entries: Persisted cache entries
        now: Timestamp of this fetch cycle
        vacate_after: Consecutive misses before a listing is considered vacated
        complete: False when the snapshot was truncated; no misses are counted then
        unparsed_ids: Ids still in the feed whose records failed validation
        max_age: Analyses older than this are re-evaluated (None: never stale)

    Returns:
        CacheDiff with one decision per listing in either input (already
        vacated entries that stay absent are left out)
    """
    cached: Dict[str, CacheEntry] = {e.listing_id: e for e in entries}
    current: Dict[str, Listing] = {}
    for listing in snapshot:
        current[listing.listing_id] = listing

    decisions = []
    for listing_id in sorted(current):
        listing = current[listing_id]
        entry = cached.get(listing_id)

        if entry is None:
            decisions.append(
                CacheDecision(listing_id, Transition.NEW, CacheEntry.from_listing(listing, now), listing)
            )
            continue

        seen = dataclasses.replace(
            entry,
            price=listing.price,
            last_seen_at=now,
            times_seen=entry.times_seen + 1,
            missed_fetches=0,
            address=listing.address,
        )
        if listing.price != entry.price:
            decisions.append(
                CacheDecision(
                    listing_id,
                    Transition.PRICE_CHANGED,
                    dataclasses.replace(seen, status=CacheStatus.PENDING),
                    listing,
                    previous_price=entry.price,
                )
            )
        elif _is_stale(entry, now, max_age):
            decisions.append(
                CacheDecision(
                    listing_id, Transition.STALE, dataclasses.replace(seen, status=CacheStatus.PENDING), listing
                )
            )
        else:
            if entry.status == CacheStatus.LIKELY_VACATED:
                # Relisted at the same price
                seen = dataclasses.replace(seen, status=CacheStatus.PENDING)
            decisions.append(CacheDecision(listing_id, Transition.UNCHANGED, seen, listing))

    if not complete:
        return CacheDiff(decisions=decisions)

    for listing_id in sorted(set(cached) - set(current) - set(unparsed_ids)):
        entry = cached[listing_id]
        if entry.status == CacheStatus.LIKELY_VACATED:
            continue
        missed = entry.missed_fetches + 1
        if missed >= vacate_after:
            updated = dataclasses.replace(entry, missed_fetches=missed, status=CacheStatus.LIKELY_VACATED)
            decisions.append(CacheDecision(listing_id, Transition.VACATED, updated))
        else:
            updated = dataclasses.replace(entry, missed_fetches=missed)
            decisions.append(CacheDecision(listing_id, Transition.MISSED, updated))

    return CacheDiff(decisions=decisions)


def _is_stale(entry: CacheEntry, now: datetime, max_age: Optional[timedelta]) -> bool:
    if max_age is None or entry.status != CacheStatus.ANALYZED or entry.last_analyzed_at is None:
        return False
    return now - entry.last_analyzed_at > max_age


class ListingCache:
    """Applies snapshot diffs and evaluation outcomes through a store."""

    def __init__(self, store: "Store", vacate_after: int = 1, max_age_days: Optional[float] = None):
        if vacate_after < 1:
            raise ValueError(f"vacate_after must be >= 1, got {vacate_after}")
        self.store = store
        self.vacate_after = vacate_after
        self.max_age = timedelta(days=max_age_days) if max_age_days else None

    def sync(
        self,
        neighborhood: str,
        property_kind: str,
        snapshot: Sequence[Listing],
        now: Optional[datetime] = None,
        complete: bool = True,
        unparsed_ids: AbstractSet[str] = frozenset(),
    ) -> CacheDiff:
        """Diff a snapshot against stored state and persist the result.

        Absent listings count as misses only when ``complete`` is True.
        """
        now = now or datetime.utcnow()
        entries = self.store.query_by_neighborhood(neighborhood, property_kind)
        diff = diff_snapshot(
            snapshot, entries, now, self.vacate_after,
            complete=complete, unparsed_ids=unparsed_ids, max_age=self.max_age,
        )

        for decision in diff.decisions:
            self.store.upsert_cache_entry(decision.entry)

            if decision.transition == Transition.PRICE_CHANGED:
                logger.info(
                    f"Price change for {decision.listing_id}: "
                    f"{decision.previous_price} -> {decision.entry.price}"
                )
                self.store.invalidate_analysis(decision.listing_id)
                if self.store.retract_opportunity(decision.listing_id, "price_changed"):
                    diff.retracted += 1

            elif decision.transition == Transition.VACATED:
                logger.info(f"Listing {decision.listing_id} likely vacated")
                if self.store.retract_opportunity(decision.listing_id, "vacated"):
                    diff.retracted += 1

            else:
                logger.debug(f"Listing {decision.listing_id}: {decision.transition.value}")

        logger.info(
            f"Cache sync {neighborhood}/{property_kind}: {diff.new} new, "
            f"{diff.price_changed} price changed, {diff.unchanged} unchanged, {diff.stale} stale, "
            f"{diff.vacated} vacated, {len(diff.to_analyze)} to analyze"
        )
        return diff

    def mark_analyzed(self, listing_id: str, when: Optional[datetime] = None) -> None:
        self._set_status(listing_id, CacheStatus.ANALYZED, when or datetime.utcnow())

    def mark_failed(self, listing_id: str) -> None:
        """Mark an evaluation as failed so the listing is retried next cycle."""
        self._set_status(listing_id, CacheStatus.FAILED, None)

    def _set_status(self, listing_id: str, status: CacheStatus, analyzed_at: Optional[datetime]) -> None:
        entry = self.store.get_cache_entry(listing_id)
        if entry is None:
            logger.warning(f"No cache entry for {listing_id}, cannot mark {status.value}")
            return
        changes = {"status": status}
        if analyzed_at is not None:
            changes["last_analyzed_at"] = analyzed_at
        self.store.upsert_cache_entry(dataclasses.replace(entry, **changes))
