"""Snapshot fetcher: paginates a listing source into a validated, complete snapshot."""

import logging
from typing import Any, Dict, List

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from deal_finder.errors import IncompleteSnapshot
from deal_finder.validation import PropertyKind, record_id, records_to_listings_batch

from .base import ListingSource, Snapshot

logger = logging.getLogger(__name__)


class SnapshotFetcher:
    """Fetches every page for a neighborhood, or fails as a whole.

    Each page is retried independently. A page that still fails makes the
    snapshot incomplete, and an incomplete snapshot must never be diffed
    against the cache (missing listings would be taken as vacated).
    """

    def __init__(
        self,
        source: ListingSource,
        page_size: int = 500,
        max_listings: int = 2000,
        retry_attempts: int = 3,
        backoff_min: float = 2.0,
        backoff_max: float = 10.0,
    ):
        """Initialize snapshot fetcher.

        Args:
            source: Listing source to page through
            page_size: Records requested per page
            max_listings: Stop paging after this many records
            retry_attempts: Attempts per page
            backoff_min: Minimum seconds between attempts
            backoff_max: Maximum seconds between attempts
        """
        self.source = source
        self.page_size = page_size
        self.max_listings = max_listings
        self._retry_attempts = retry_attempts
        self._backoff_min = backoff_min
        self._backoff_max = backoff_max

    def fetch(self, neighborhood: str, property_kind: PropertyKind) -> Snapshot:
        """Fetch and validate a snapshot.

        A snapshot that stops at ``max_listings`` is returned with
        ``complete=False``.

        Raises:
            IncompleteSnapshot: If any page fails after retries
        """
        property_kind = PropertyKind(property_kind)
        records: List[Dict[str, Any]] = []
        offset = 0
        pages = 0
        complete = True

        logger.info(f"Fetching {property_kind.value} snapshot for {neighborhood} from {self.source.name}")

        while offset < self.max_listings:
            limit = min(self.page_size, self.max_listings - offset)
            try:
                page = self._fetch_page_with_retry(neighborhood, property_kind, offset, limit)
            except Exception as e:
                logger.warning(
                    f"Page at offset {offset} failed for {neighborhood}; snapshot incomplete: {e}"
                )
                raise IncompleteSnapshot(
                    f"{neighborhood}/{property_kind.value}: page at offset {offset} failed: {e}"
                ) from e

            pages += 1
            records.extend(page)
            if len(page) < limit:
                break
            offset += limit
        else:
            complete = False
            logger.warning(
                f"Reached max_listings={self.max_listings} for {neighborhood}; "
                f"snapshot truncated, absent listings will not be counted as missed"
            )

        listings, failed = records_to_listings_batch(records, neighborhood, property_kind)
        unparsed_ids = frozenset(filter(None, (record_id(r) for r in failed)))
        logger.info(
            f"Snapshot {neighborhood}/{property_kind.value}: {len(listings)} listings "
            f"from {len(records)} records in {pages} pages"
        )
        return Snapshot(
            neighborhood=neighborhood,
            property_kind=property_kind,
            listings=listings,
            records_fetched=len(records),
            validation_errors=len(failed),
            pages=pages,
            complete=complete,
            unparsed_ids=unparsed_ids,
        )

    def _fetch_page_with_retry(
        self, neighborhood: str, property_kind: PropertyKind, offset: int, limit: int
    ) -> List[Dict[str, Any]]:
        @retry(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=1, min=self._backoff_min, max=self._backoff_max),
            reraise=True,
        )
        def _fetch():
            return self.source.fetch_page(neighborhood, property_kind, offset, limit)

        return _fetch()
