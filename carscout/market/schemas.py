"""
Pydantic schemas for search parameters and listings.

SearchParams is the only input the acquisition client accepts and the sole
source of cache keys. Listing is produced by the response parser; a raw
record that does not validate is dropped, never partially filled.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Ownership-count range syntax: "0-1", "2-3", "4--1" (open-ended)
_RANGE_PATTERN = r"^\d+--?\d+$"

ITEM_URL_TEMPLATE = "https://www.yad2.co.il/vehicles/item/{token}"


# =============================================================================
# Search parameters
# =============================================================================


class RangeWindow(BaseModel):
    """Year and distance window applied over a SearchBase."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    year_from: int = Field(..., ge=1900, description="First production year")
    year_to: int | None = Field(None, ge=1900, description="Last production year (default: year_from)")
    km_from: int = Field(default=0, ge=0, description="Minimum mileage in km")
    km_to: int = Field(default=-1, ge=-1, description="Maximum mileage in km (-1: no limit)")

    @model_validator(mode="after")
    def validate_bounds(self) -> "RangeWindow":
        if self.year_to is not None and self.year_to < self.year_from:
            raise ValueError(f"year_to ({self.year_to}) < year_from ({self.year_from})")
        if self.km_to != -1 and self.km_to < self.km_from:
            raise ValueError(f"km_to ({self.km_to}) < km_from ({self.km_from})")
        return self


class SearchBase(BaseModel):
    """Search fields shared by every range of a parallel query."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    manufacturer: int = Field(..., ge=1, description="Marketplace manufacturer id")
    model: int = Field(..., ge=1, description="Marketplace model id")
    hand: str | None = Field(
        None, pattern=_RANGE_PATTERN, description="Prior-ownership range (default from settings)"
    )
    price_floor: str | None = Field(
        None, pattern=_RANGE_PATTERN, description="Price range sentinel (default from settings)"
    )

    def with_window(self, window: RangeWindow) -> "SearchParams":
        base = self.model_dump(include=set(SearchBase.model_fields))
        return SearchParams(**base, **window.model_dump())


class SearchParams(SearchBase, RangeWindow):
    """One complete search.

    Immutable. Two instances with identical field values always produce the
    same cache key; the build identifier is never part of it.
    """

    def normalized(self) -> "SearchParams":
        """Equivalent params with an explicit year_to."""
        if self.year_to is None:
            return self.model_copy(update={"year_to": self.year_from})
        return self

    def cache_key(self) -> str:
        return json.dumps(self.normalized().model_dump(), sort_keys=True, separators=(",", ":"))


# =============================================================================
# Listings
# =============================================================================


class SellerType(str, Enum):
    """Seller classification, taken from the response array a record came from."""

    DEALER = "dealer"
    PRIVATE = "private"


class Listing(BaseModel):
    """A marketplace record."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1, description="Unique listing token")
    price: int = Field(..., ge=0, description="Asking price")
    year: int = Field(..., description="Production year")
    seller_type: SellerType
    mileage: int | None = Field(None, ge=0, description="Mileage in km, when reported")
    location: str | None = Field(None, description="Area text")
    manufacturer: str | None = None
    model: str | None = None
    sub_model: str | None = None
    hand: str | None = Field(None, description="Hand-count text")
    engine_type: str | None = None
    cover_image: str | None = None
    images: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    commitments: tuple[str, ...] = Field(default=(), description="Condition notes")
    agency_name: str | None = None

    @property
    def item_url(self) -> str:
        return ITEM_URL_TEMPLATE.format(token=self.token)

    @property
    def title(self) -> str:
        return f"{self.model or ''} {self.year}".strip()

    def to_summary(self, minified: bool = False) -> dict[str, Any]:
        """Compact dictionary for downstream consumers.

        Args:
            minified: Only title, price, year, mileage, link and hand.

        Returns:
            Summary dictionary; optional fields are None when unknown.
        """
        summary: dict[str, Any] = {
            "title": self.title,
            "price": self.price,
            "year": self.year,
            "mileage": self.mileage,
            "link": self.token,
            "hand": self.hand,
        }
        if minified:
            return summary

        summary.update(
            {
                "location": self.location,
                "seller_type": self.seller_type.value,
                "highlights": ", ".join(self.tags) or None,
                "condition_notes": ", ".join(self.commitments) or None,
                "extra_data": {
                    "url": self.item_url,
                    "cover_image": self.cover_image,
                    "images": list(self.images) or None,
                },
            }
        )
        return summary
