"""Base classes and data models for listing sources."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Sequence, Union

from deal_finder.validation import Listing, PropertyKind


@dataclass
class Snapshot:
    """Complete set of active listings for one neighborhood and kind.

    ``complete`` is False when paging stopped at the listing cap, so ids
    absent from ``listings`` may still be on the market. ``unparsed_ids``
    holds the ids of records that were fetched but failed validation.
    """
    neighborhood: str
    property_kind: PropertyKind
    listings: List[Listing]
    records_fetched: int = 0
    validation_errors: int = 0
    pages: int = 0
    complete: bool = True
    unparsed_ids: FrozenSet[str] = frozenset()
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def active_count(self) -> int:
        return len(self.listings)


class ListingSource(ABC):
    """Abstract paginated source of raw listing records.

    Sources return loosely-typed dicts; validation into Listing happens in
    the snapshot fetcher.
    """

    @abstractmethod
    def fetch_page(
        self,
        neighborhood: str,
        property_kind: PropertyKind,
        offset: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of active listings.

        Args:
            neighborhood: Neighborhood slug
            property_kind: rental or sale
            offset: Index of the first record
            limit: Maximum records in the page

        Returns:
            Raw records (fewer than ``limit`` means this was the last page)

        Raises:
            Exception: If the page cannot be fetched
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the source identifier."""
        pass


class StaticListingSource(ListingSource):
    """Serves records from memory, keyed by (neighborhood, kind)."""

    def __init__(self, records: Mapping[tuple, Sequence[Dict[str, Any]]]):
        self._records = {
            (neighborhood, PropertyKind(kind)): list(rows)
            for (neighborhood, kind), rows in records.items()
        }

    @property
    def name(self) -> str:
        return "static"

    def fetch_page(self, neighborhood, property_kind, offset, limit):
        rows = self._records.get((neighborhood, PropertyKind(property_kind)), [])
        return rows[offset:offset + limit]


class JsonFileSource(StaticListingSource):
    """Reads records from a JSON export.

    Expected layout::

        {"east-village": {"rental": [{...}, ...], "sale": [...]}, ...}

    A bare list of records is also accepted and is served for every
    neighborhood as rentals.
    """

    def __init__(self, path: Union[str, Path], default_neighborhood: str = "unknown"):
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, list):
            records = {(default_neighborhood, PropertyKind.RENTAL.value): data}
        else:
            records = {
                (neighborhood, kind): rows
                for neighborhood, by_kind in data.items()
                for kind, rows in by_kind.items()
            }
        super().__init__(records)
        self._default_neighborhood = default_neighborhood
        self._is_flat = isinstance(data, list)

    @property
    def name(self) -> str:
        return "json"

    def fetch_page(self, neighborhood, property_kind, offset, limit):
        if self._is_flat:
            neighborhood = self._default_neighborhood
        return super().fetch_page(neighborhood, property_kind, offset, limit)
