"""Listing sources and snapshot fetching.

Main exports:
- ListingSource: Interface for paginated listing sources
- HttpListingSource: Search-API source
- JsonFileSource / StaticListingSource: Offline sources
- SnapshotFetcher: Paginate + retry + validate into a Snapshot
- build_source: Construct the configured source
"""

from typing import Optional

from deal_finder.config import Settings

from .base import JsonFileSource, ListingSource, Snapshot, StaticListingSource
from .fetcher import SnapshotFetcher
from .http import HttpListingSource


def build_source(settings: Settings, input_path: Optional[str] = None) -> ListingSource:
    """Build a listing source: a JSON export if given, else the search API."""
    if input_path:
        return JsonFileSource(input_path)
    if not settings.listing_api_url:
        raise ValueError(
            "No listing source configured: set DEAL_FINDER_LISTING_API_URL or pass --input"
        )
    return HttpListingSource(
        settings.listing_api_url,
        api_key=settings.listing_api_key,
        timeout=settings.listing_api_timeout,
    )


__all__ = [
    "HttpListingSource",
    "JsonFileSource",
    "ListingSource",
    "Snapshot",
    "SnapshotFetcher",
    "StaticListingSource",
    "build_source",
]
