"""
Data-endpoint response parsing.

Listings sit at pageProps.dehydratedState.queries[*].state.data, split into a
"commercial" (dealer) and a "private" array. Both arrays are concatenated,
dealers first.
"""

import json
from typing import Any

from pydantic import ValidationError

from carscout.crawler.errors import ResponseParseError
from carscout.market.schemas import Listing, SellerType
from carscout.utils.logging import get_logger

logger = get_logger(__name__)

_PREVIEW_CHARS = 200

SELLER_ARRAYS: tuple[tuple[str, SellerType], ...] = (
    ("commercial", SellerType.DEALER),
    ("private", SellerType.PRIVATE),
)


def _text(value: Any) -> str | None:
    """`{"id": .., "text": ..}` objects carry display text under `text`."""
    if isinstance(value, dict):
        text = value.get("text")
        return str(text) if text else None
    return None


def _find_listing_data(document: Any) -> dict[str, Any] | None:
    try:
        queries = document["pageProps"]["dehydratedState"]["queries"]
    except (KeyError, TypeError):
        return None
    if not isinstance(queries, list):
        return None

    for query in queries:
        data = query.get("state", {}).get("data") if isinstance(query, dict) else None
        if isinstance(data, dict) and any(key in data for key, _ in SELLER_ARRAYS):
            return data
    return None


def listing_from_raw(raw: dict[str, Any], seller_type: SellerType) -> Listing:
    """Convert one raw marketplace record.

    Raises:
        ValidationError: Required fields are missing or malformed.
    """
    meta = raw.get("metaData") or {}
    address = raw.get("address") or {}
    customer = raw.get("customer") or {}
    return Listing(
        token=raw.get("token"),
        price=raw.get("price"),
        year=(raw.get("vehicleDates") or {}).get("yearOfProduction"),
        seller_type=seller_type,
        mileage=raw.get("km"),
        location=_text(address.get("area")),
        manufacturer=_text(raw.get("manufacturer")),
        model=_text(raw.get("model")),
        sub_model=_text(raw.get("subModel")),
        hand=_text(raw.get("hand")),
        engine_type=_text(raw.get("engineType")),
        cover_image=meta.get("coverImage") or None,
        images=tuple(meta.get("images") or ()),
        tags=tuple(tag["name"] for tag in raw.get("tags") or () if tag.get("name")),
        commitments=tuple(raw.get("commitment") or ()),
        agency_name=customer.get("agencyName") or None,
    )


def parse_listings(text: str) -> list[Listing]:
    """Parse a data-endpoint body into listings.

    Records that fail validation are skipped with a warning. An empty result
    is a valid, successful parse.

    Args:
        text: Response body.

    Returns:
        Dealer listings followed by private listings.

    Raises:
        ResponseParseError: Body is not JSON or lacks the listing wrapper.
    """
    preview = text[:_PREVIEW_CHARS]
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Expected JSON but got: {preview!r}", preview=preview) from e

    data = _find_listing_data(document)
    if data is None:
        raise ResponseParseError("Unexpected response structure", preview=preview)

    listings: list[Listing] = []
    skipped = 0
    for key, seller_type in SELLER_ARRAYS:
        records = data.get(key) or []
        if not isinstance(records, list):
            raise ResponseParseError(f"Expected '{key}' to be a list", preview=preview)
        for raw in records:
            try:
                listings.append(listing_from_raw(raw, seller_type))
            except (ValidationError, AttributeError, KeyError, TypeError) as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed listing",
                    token=raw.get("token") if isinstance(raw, dict) else None,
                    error=(str(e).splitlines() or [type(e).__name__])[0],
                )

    if not listings:
        logger.warning("No listings found in response", skipped=skipped)
    else:
        logger.debug("Parsed listings", count=len(listings), skipped=skipped)
    return listings
