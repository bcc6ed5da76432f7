"""Pydantic models for listing validation and cleaning.

This module defines the validated, immutable Listing snapshot that the engine
consumes. Records coming from a listing source are cleaned here (prices with
currency symbols, amenity spelling, whitespace) before any comparison runs.
"""

import re
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class PropertyKind(str, Enum):
    """Listing kind enumeration."""
    RENTAL = "rental"
    SALE = "sale"


class Listing(BaseModel):
    """Validated point-in-time snapshot of a unit for rent or sale.

    Listings are frozen: a new price produces a new Listing value rather than a
    mutation, which keeps comparable pools and cache diffs side-effect free.

    Example:
        listing = Listing(
            listing_id="4471829",
            address="123 E 7th St #4B",
            price=3200,
            bedrooms=1,
            bathrooms=1,
            neighborhood="east-village",
            property_kind=PropertyKind.RENTAL,
        )
    """
    model_config = {"frozen": True, "str_strip_whitespace": True}

    # Required fields
    listing_id: str = Field(..., description="Stable external identifier", min_length=1)
    address: str = Field(..., description="Street address including unit", min_length=1)
    price: int = Field(..., description="Monthly rent or asking price in dollars", gt=0)
    bedrooms: int = Field(..., ge=0, le=30, description="Bedrooms (studio = 0)")
    bathrooms: float = Field(..., ge=0, le=20, description="Bathrooms in half steps")
    neighborhood: str = Field(..., description="Neighborhood slug", min_length=1)
    property_kind: PropertyKind = Field(..., description="rental or sale")

    # Optional details
    sqft: Optional[int] = Field(None, gt=0, description="Interior area in square feet")
    built_year: Optional[int] = Field(None, ge=1700, le=2035, description="Construction year")
    building_units: Optional[int] = Field(None, gt=0, description="Units in the building")
    amenities: FrozenSet[str] = Field(default_factory=frozenset)
    description: str = Field("", description="Free-text listing description")

    # Optional metadata
    url: Optional[str] = Field(None, description="Listing page URL")
    fetched_at: datetime = Field(
        default_factory=datetime.utcnow, description="When the snapshot was fetched"
    )

    @field_validator("neighborhood", mode="before")
    @classmethod
    def normalize_neighborhood(cls, v):
        """Normalize neighborhood to a slug: "East Village" -> "east-village"."""
        if not isinstance(v, str):
            return v
        return re.sub(r"\s+", "-", v.strip().lower())

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v) -> int:
        """Parse price from various formats.

        Handles:
        - Integers: 3200
        - Floats: 3200.0
        - Strings with currency: "$3,200", "$3,200/mo"
        """
        if isinstance(v, bool):
            raise ValueError(f"Cannot parse price: {v}")
        if isinstance(v, int):
            return v
        if isinstance(v, float):
            return int(round(v))

        if isinstance(v, str):
            match = re.search(r"[\d,]+(?:\.\d+)?", v)
            if match:
                return int(round(float(match.group().replace(",", ""))))

        raise ValueError(f"Cannot parse price: {v}")

    @field_validator("sqft", mode="before")
    @classmethod
    def parse_sqft(cls, v) -> Optional[int]:
        """Parse square footage; zero and blanks mean unknown."""
        if v is None or v == "":
            return None
        if isinstance(v, str):
            match = re.search(r"[\d,]+", v)
            if not match:
                return None
            v = match.group().replace(",", "")
        try:
            value = int(float(v))
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"Cannot parse sqft: {v!r}") from e
        return value if value > 0 else None

    @field_validator("built_year", "building_units", mode="before")
    @classmethod
    def zero_means_unknown(cls, v) -> Optional[int]:
        if v in (None, "", 0, "0"):
            return None
        return v

    @field_validator("amenities", mode="before")
    @classmethod
    def normalize_amenities(cls, v) -> FrozenSet[str]:
        """Lower-case and trim amenity labels, dropping blanks."""
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError(f"Cannot parse amenities: {v!r}")
        return frozenset(
            " ".join(str(a).lower().replace("_", " ").split())
            for a in v
            if a and str(a).strip()
        )

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v) -> str:
        return v or ""

    @model_validator(mode="after")
    def validate_half_bathrooms(self):
        """Bathrooms come in half steps (1, 1.5, 2, ...)."""
        if (self.bathrooms * 2) != int(self.bathrooms * 2):
            raise ValueError(f"Bathrooms must be a multiple of 0.5, got {self.bathrooms}")
        return self

    def __repr__(self) -> str:
        return f"<Listing(listing_id='{self.listing_id}', address='{self.address}', price={self.price})>"
