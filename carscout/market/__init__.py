"""
carscout market module.

Marketplace semantics on top of the crawler: search and listing schemas,
request planning, response parsing, caching, channel strategy and the
acquisition client.
"""

from carscout.market.cache import CacheEntry, ResponseCache
from carscout.market.client import MarketClient, RangeOutcome
from carscout.market.parser import listing_from_raw, parse_listings
from carscout.market.planner import RequestPlanner
from carscout.market.ranges import KmRange, generate_km_ranges, plan_year_windows
from carscout.market.schemas import (
    Listing,
    RangeWindow,
    SearchBase,
    SearchParams,
    SellerType,
)
from carscout.market.strategy import BlockingStats, StrategySelector

__all__ = [
    # Client
    "MarketClient",
    "RangeOutcome",
    # Schemas
    "SearchParams",
    "SearchBase",
    "RangeWindow",
    "Listing",
    "SellerType",
    # Pipeline parts
    "RequestPlanner",
    "parse_listings",
    "listing_from_raw",
    "ResponseCache",
    "CacheEntry",
    "StrategySelector",
    "BlockingStats",
    # Range planning
    "KmRange",
    "generate_km_ranges",
    "plan_year_windows",
]
