"""
Marketplace acquisition client.

One MarketClient instance owns all mutable acquisition state: the build
identifier, the blocking statistics and the response cache. Independent
clients never share state.

Pipeline for one top-level fetch:
    cache lookup -> channel order -> per channel: retry controller
    (blocking detector, build-id resolver) -> first success is cached and
    returned -> total exhaustion raises ExhaustionError with every attempt.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from carscout.crawler.challenge_detector import BlockingDetector
from carscout.crawler.errors import AcquisitionError, ExhaustionError
from carscout.crawler.fetch_result import ChannelKind, FetchAttempt
from carscout.crawler.http_fetcher import BaseChannel, DirectChannel
from carscout.crawler.id_resolver import BuildIdResolver
from carscout.crawler.relay_fetcher import RelayChannel
from carscout.crawler.retry import RetryController
from carscout.market.cache import ResponseCache
from carscout.market.parser import parse_listings
from carscout.market.planner import RequestPlanner
from carscout.market.schemas import Listing, RangeWindow, SearchBase, SearchParams
from carscout.market.strategy import BlockingStats, StrategySelector
from carscout.utils.backoff import BackoffPolicy
from carscout.utils.config import Settings, get_settings
from carscout.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@dataclass
class RangeOutcome:
    """Result of one range in a parallel fetch."""

    window: RangeWindow
    params: SearchParams
    listings: list[Listing] = field(default_factory=list)
    error: AcquisitionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MarketClient:
    """Fetches listings through the direct channel and the proxy relay.

    Example:
        async with MarketClient() as client:
            listings = await client.fetch_listings(
                SearchParams(manufacturer=19, model=10226, year_from=2020, year_to=2021)
            )
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        direct: BaseChannel | None = None,
        relay: BaseChannel | None = None,
        policy: BackoffPolicy | None = None,
        detector: BlockingDetector | None = None,
        cache: ResponseCache | None = None,
        selector: StrategySelector | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize client.

        Args:
            settings: Settings (default: get_settings()).
            direct: Direct channel (default: curl_cffi DirectChannel).
            relay: Proxy relay channel (default: RelayChannel when credentials
                are configured, otherwise no relay).
            policy: Backoff policy (default: from settings).
            detector: Blocking detector (default: from settings).
            cache: Response cache (default: settings TTL).
            selector: Strategy selector (default: from settings).
            sleep: Backoff sleep function.
            clock: Wall clock in seconds for cache and statistics.
        """
        self.settings = settings or get_settings()
        marketplace = self.settings.marketplace

        self.planner = RequestPlanner(marketplace)
        self.direct = direct or DirectChannel(
            timeout=marketplace.request_timeout,
            impersonate=marketplace.impersonate,
        )
        self.relay = relay if relay is not None else self._build_relay()
        if self.relay is None:
            logger.warning("Relay credentials not configured, running direct-only")

        self.policy = policy or BackoffPolicy.from_settings(self.settings)
        self.detector = detector or BlockingDetector.from_settings(self.settings)
        self.resolver = BuildIdResolver(
            marketplace.default_build_id,
            self.planner.landing_url,
            self.direct,
            headers=self.planner.landing_headers(),
            detector=self.detector,
        )
        self.controller = RetryController(self.policy, self.detector, self.resolver, sleep=sleep)
        self.cache = cache or ResponseCache(self.settings.cache.ttl_seconds, clock=clock)
        self.selector = selector or StrategySelector(self.settings.strategy, clock=clock)

        self._request_counter = itertools.count(1)
        self._in_flight: dict[tuple[Any, ...], asyncio.Task[list[Listing]]] = {}

    def _build_relay(self) -> RelayChannel | None:
        relay = self.settings.relay
        if not relay.enabled:
            return None
        return RelayChannel(
            endpoint=relay.endpoint,
            token=relay.token or "",
            zone=relay.zone or "",
            country=relay.country,
            timeout=relay.timeout,
        )

    @property
    def build_id(self) -> str:
        """Build identifier currently embedded in data URLs."""
        return self.resolver.build_id

    @property
    def relay_enabled(self) -> bool:
        return self.relay is not None

    def _channel(self, kind: ChannelKind) -> BaseChannel:
        if kind is ChannelKind.PROXY:
            assert self.relay is not None
            return self.relay
        return self.direct

    def _next_request_id(self) -> str:
        return f"req-{next(self._request_counter)}-{int(time.time() * 1000)}"

    # =========================================================================
    # Single search
    # =========================================================================

    async def fetch_listings(
        self,
        params: SearchParams,
        *,
        prefer_proxy: bool | None = None,
        skip_direct_if_blocked: bool = True,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> list[Listing]:
        """Fetch listings for one search.

        Args:
            params: Search parameters.
            prefer_proxy: Force (True) or forbid (False) proxy-first order.
                None uses the adaptive choice.
            skip_direct_if_blocked: Demote the direct channel after repeated
                direct failures even if prefer_proxy is False.
            max_attempts: Per-call attempt budget per channel.
            base_delay: Per-call base backoff delay in seconds.

        Returns:
            Listings (possibly empty).

        Raises:
            ExhaustionError: Every channel failed.
        """
        key = params.cache_key()

        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Cache hit", year_from=params.year_from, count=len(cached))
            return cached

        policy = self.policy.with_overrides(max_attempts=max_attempts, base_delay=base_delay)
        # Only calls with identical options may share a run
        flight_key = (key, prefer_proxy, skip_direct_if_blocked, policy)

        in_flight = self._in_flight.get(flight_key)
        if in_flight is not None:
            logger.debug("Joining in-flight request", year_from=params.year_from)
            return list(await asyncio.shield(in_flight))

        task = asyncio.create_task(
            self._fetch_uncached(
                params,
                key,
                prefer_proxy=prefer_proxy,
                skip_direct_if_blocked=skip_direct_if_blocked,
                policy=policy,
            )
        )
        self._in_flight[flight_key] = task
        task.add_done_callback(lambda _: self._in_flight.pop(flight_key, None))
        return list(await asyncio.shield(task))

    async def _fetch_uncached(
        self,
        params: SearchParams,
        key: str,
        *,
        prefer_proxy: bool | None,
        skip_direct_if_blocked: bool,
        policy: BackoffPolicy,
    ) -> list[Listing]:
        request_id = self._next_request_id()
        with LogContext(request_id=request_id):
            self.selector.record_request()
            order = self.selector.channel_order(
                relay_enabled=self.relay_enabled,
                prefer_proxy=prefer_proxy,
                skip_direct_if_blocked=skip_direct_if_blocked,
            )
            logger.info(
                "Fetching listings",
                manufacturer=params.manufacturer,
                model=params.model,
                years=f"{params.year_from}-{params.normalized().year_to}",
                order=[kind.value for kind in order],
                max_backoff_seconds=sum(policy.total_delay(kind) for kind in order),
            )

            attempts: list[FetchAttempt] = []
            headers = self.planner.data_headers()
            url_for = partial(self.planner.build_url, params)

            for kind in order:
                result = await self.controller.run(
                    self._channel(kind),
                    url_for=url_for,
                    headers=headers,
                    parse=parse_listings,
                    request_id=request_id,
                    policy=policy,
                )
                attempts.extend(result.attempts)
                self.selector.record_outcome(kind, result.succeeded)

                if result.payload is not None:
                    listings = result.payload
                    self.cache.set(key, listings)
                    logger.info(
                        "Fetch succeeded",
                        channel=kind.value,
                        count=len(listings),
                        attempts=len(attempts),
                    )
                    return listings

                logger.warning(
                    "Channel exhausted",
                    channel=kind.value,
                    attempts=len(result.attempts),
                    short_circuited=result.short_circuited,
                )

            self._log_failure_summary(request_id, attempts)
            raise ExhaustionError(request_id, attempts, params)

    def _log_failure_summary(self, request_id: str, attempts: Sequence[FetchAttempt]) -> None:
        logger.error("All attempts failed", request_id=request_id, attempts=len(attempts))
        for attempt in attempts:
            logger.error(
                "Failed attempt",
                channel=attempt.channel.value,
                attempt=attempt.attempt,
                outcome=attempt.outcome.value if attempt.outcome else None,
                reason=attempt.reason,
            )

    # =========================================================================
    # Parallel ranges
    # =========================================================================

    async def fetch_ranges_detailed(
        self,
        base: SearchBase,
        windows: Sequence[RangeWindow],
        **options: Any,
    ) -> list[RangeOutcome]:
        """Fetch every window concurrently; one outcome per window, in order.

        A failed window never cancels its siblings.

        Args:
            base: Fields shared by all windows.
            windows: Year/distance windows.
            **options: Forwarded to fetch_listings. prefer_proxy defaults to
                the adaptive choice evaluated once for the whole batch.
        """
        options.setdefault("prefer_proxy", self.selector.should_prefer_proxy())
        params_list = [base.with_window(window) for window in windows]
        logger.info(
            "Starting parallel fetch",
            ranges=[f"{p.year_from}-{p.normalized().year_to}" for p in params_list],
        )

        results = await asyncio.gather(
            *(self.fetch_listings(params, **options) for params in params_list),
            return_exceptions=True,
        )

        outcomes: list[RangeOutcome] = []
        for window, params, result in zip(windows, params_list, results, strict=True):
            if isinstance(result, AcquisitionError):
                logger.warning(
                    "Range failed",
                    years=f"{params.year_from}-{params.normalized().year_to}",
                    error=str(result),
                )
                outcomes.append(RangeOutcome(window, params, error=result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(RangeOutcome(window, params, listings=result))

        logger.info(
            "Parallel fetch complete",
            total=sum(len(o.listings) for o in outcomes),
            failed=sum(1 for o in outcomes if not o.ok),
        )
        return outcomes

    async def fetch_ranges(
        self,
        base: SearchBase,
        windows: Sequence[RangeWindow],
        *,
        sort_by_price: bool = False,
        **options: Any,
    ) -> list[Listing]:
        """Fetch every window concurrently and merge the results.

        Failed windows contribute nothing. Listings are de-duplicated by token
        (first occurrence wins).

        Args:
            base: Fields shared by all windows.
            windows: Year/distance windows.
            sort_by_price: Sort the merged list by ascending price.
            **options: Forwarded to fetch_listings.
        """
        outcomes = await self.fetch_ranges_detailed(base, windows, **options)

        merged: list[Listing] = []
        seen: set[str] = set()
        for outcome in outcomes:
            for listing in outcome.listings:
                if listing.token in seen:
                    continue
                seen.add(listing.token)
                merged.append(listing)

        if sort_by_price:
            merged.sort(key=lambda listing: listing.price)
        return merged

    # =========================================================================
    # Statistics and lifecycle
    # =========================================================================

    def get_blocking_stats(self) -> BlockingStats:
        """Snapshot of the blocking statistics."""
        return self.selector.snapshot()

    def reset_blocking_stats(self) -> None:
        """Restore initial statistics (e.g. after a network change)."""
        self.selector.reset()

    async def close(self) -> None:
        await self.direct.close()
        if self.relay is not None:
            await self.relay.close()

    async def __aenter__(self) -> MarketClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
