"""
Main entry point for carscout.
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from carscout.crawler.errors import ExhaustionError
from carscout.market.client import MarketClient
from carscout.market.ranges import plan_year_windows
from carscout.market.schemas import Listing, RangeWindow, SearchBase, SearchParams
from carscout.utils.config import get_settings
from carscout.utils.logging import configure_logging, get_logger


def _parse_window(value: str) -> RangeWindow:
    """Parse `YEAR_FROM-YEAR_TO[:KM_FROM-KM_TO]`."""
    years, _, kms = value.partition(":")
    try:
        year_from, _, year_to = years.partition("-")
        window: dict[str, int] = {"year_from": int(year_from)}
        if year_to:
            window["year_to"] = int(year_to)
        if kms:
            km_from, _, km_to = kms.partition("-")
            window["km_from"] = int(km_from)
            if km_to:
                window["km_to"] = int(km_to)
        return RangeWindow(**window)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid range '{value}': {e}") from e


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carscout",
        description="carscout - vehicle marketplace listing acquisition",
    )
    parser.add_argument("--pretty", action="store_true", help="Console logs instead of JSON")
    parser.add_argument("--log-level", type=str, default=None, help="Override log level")
    parser.add_argument(
        "--minified", action="store_true", help="Print minified listing summaries"
    )
    parser.add_argument("--prefer-proxy", action="store_true", help="Try the relay first")

    sub = parser.add_subparsers(dest="command", required=True)

    def add_base(p: argparse.ArgumentParser) -> None:
        p.add_argument("--manufacturer", "-m", type=int, required=True, help="Manufacturer id")
        p.add_argument("--model", "-M", type=int, required=True, help="Model id")
        p.add_argument("--hand", type=str, default=None, help="Ownership range, e.g. 0-1")

    fetch = sub.add_parser("fetch", help="Fetch one search")
    add_base(fetch)
    fetch.add_argument("--year-from", type=int, required=True)
    fetch.add_argument("--year-to", type=int, default=None)
    fetch.add_argument("--km-from", type=int, default=0)
    fetch.add_argument("--km-to", type=int, default=-1)

    ranges = sub.add_parser("ranges", help="Fetch several windows in parallel")
    add_base(ranges)
    ranges.add_argument(
        "windows",
        nargs="+",
        type=_parse_window,
        help="Windows as YEAR_FROM-YEAR_TO[:KM_FROM-KM_TO]",
    )
    ranges.add_argument("--sort", action="store_true", help="Sort by ascending price")

    plan = sub.add_parser("plan", help="Fetch depreciation windows around a target year")
    add_base(plan)
    plan.add_argument("--target-year", type=int, default=None)
    plan.add_argument("--dry-run", action="store_true", help="Print the windows only")

    return parser


def _summaries(listings: list[Listing], minified: bool) -> list[dict[str, Any]]:
    return [listing.to_summary(minified=minified) for listing in listings]


async def run(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)
    options: dict[str, Any] = {"prefer_proxy": True} if args.prefer_proxy else {}
    base = SearchBase(manufacturer=args.manufacturer, model=args.model, hand=args.hand)

    if args.command == "plan":
        windows = plan_year_windows(args.target_year)
        if args.dry_run:
            print(json.dumps([w.model_dump() for w in windows], indent=2))
            return 0
    elif args.command == "ranges":
        windows = list(args.windows)

    async with MarketClient(get_settings()) as client:
        try:
            if args.command == "fetch":
                params = SearchParams(
                    **base.model_dump(),
                    year_from=args.year_from,
                    year_to=args.year_to,
                    km_from=args.km_from,
                    km_to=args.km_to,
                )
                listings = await client.fetch_listings(params, **options)
            else:
                listings = await client.fetch_ranges(
                    base,
                    windows,
                    sort_by_price=args.command == "plan" or args.sort,
                    **options,
                )
        except ExhaustionError as e:
            logger.error("Fetch failed", request_id=e.request_id, outcomes=e.outcome_counts())
            print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False), file=sys.stderr)
            return 1

        logger.info("Done", count=len(listings), stats=client.get_blocking_stats().to_dict())

    print(json.dumps(_summaries(listings, args.minified), indent=2, ensure_ascii=False))
    return 0


def main() -> None:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(
        log_level=args.log_level or settings.general.log_level,
        json_format=False if args.pretty else None,
    )

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
