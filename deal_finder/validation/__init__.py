"""Data validation module using Pydantic models.

Main exports:
- Listing: Validated, immutable listing snapshot
- PropertyKind: rental / sale
- record_id: External id of a raw record
- record_to_listing: Convert a source record to a Listing
- records_to_listings_batch: Convert a batch of source records

Example usage:
    from deal_finder.validation import PropertyKind, records_to_listings_batch

    validated, failed = records_to_listings_batch(
        records, neighborhood="east-village", property_kind=PropertyKind.RENTAL
    )
"""

from .models import Listing, PropertyKind
from .converters import record_id, record_to_listing, records_to_listings_batch

__all__ = [
    "Listing",
    "PropertyKind",
    "record_id",
    "record_to_listing",
    "records_to_listings_batch",
]
