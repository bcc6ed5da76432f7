"""Converters for transforming listing source records to validated models.

This module maps the loosely-typed JSON records a listing source returns
(camelCase or snake_case keys, missing fields) onto the Listing model.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import Listing, PropertyKind

logger = logging.getLogger(__name__)


def _first(record: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-None value among the given keys."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def record_id(record: Dict[str, Any]) -> Optional[str]:
    """External id of a raw record, or None when it carries none."""
    if not isinstance(record, dict):
        return None
    listing_id = _first(record, "listing_id", "id")
    return str(listing_id) if listing_id is not None else None


def record_to_listing(
    record: Dict[str, Any],
    neighborhood: str,
    property_kind: PropertyKind,
) -> Optional[Listing]:
    """Convert a source record to a validated Listing.

    If validation fails, the error is logged and None is returned so one
    malformed record never sinks the whole snapshot.

    Args:
        record: Raw record from the listing source
        neighborhood: Neighborhood the record was fetched for (used when the
            record itself does not carry one)
        property_kind: Kind of listing that was fetched

    Returns:
        Validated Listing, or None if validation fails
    """
    if not isinstance(record, dict):
        logger.warning(f"Skipping non-object record: {record!r:.80}")
        return None

    listing_id = record_id(record)
    try:
        return Listing(
            listing_id=listing_id or "",
            address=_first(record, "address", "title") or "",
            price=_first(record, "price", "monthly_rent", "sale_price"),
            bedrooms=_first(record, "bedrooms", "beds"),
            bathrooms=_first(record, "bathrooms", "baths"),
            neighborhood=record.get("neighborhood") or neighborhood,
            property_kind=property_kind,
            sqft=_first(record, "sqft", "square_feet"),
            built_year=_first(record, "built_year", "builtIn", "year_built"),
            building_units=_first(record, "building_units", "units", "totalUnits"),
            amenities=record.get("amenities") or [],
            description=record.get("description") or "",
            url=record.get("url"),
        )

    except ValidationError as e:
        logger.warning(
            f"Validation failed for listing {listing_id}: {e.error_count()} errors"
        )
        logger.debug(f"Validation errors: {e.errors()}")
        return None


def records_to_listings_batch(
    records: List[Dict[str, Any]],
    neighborhood: str,
    property_kind: PropertyKind,
) -> tuple[List[Listing], List[Dict[str, Any]]]:
    """Convert a batch of records to validated Listings.

    Returns:
        Tuple of (validated_listings, failed_records)
    """
    validated = []
    failed = []

    for record in records:
        result = record_to_listing(record, neighborhood, property_kind)
        if result is not None:
            validated.append(result)
        else:
            failed.append(record)

    if records:
        logger.info(
            f"Batch validation complete: {len(validated)} succeeded, "
            f"{len(failed)} failed ({len(failed)/len(records)*100:.1f}% failure rate)"
        )

    return validated, failed
