"""
Adaptive channel-order selection.

Channel order is fixed once per top-level fetch from rolling statistics:
1. consecutive direct failures >= threshold: proxy first
2. last direct success older than max age: proxy first
3. otherwise: direct first

The statistics are a coarse signal shared by every pipeline of one client,
not a ledger. Updates are serialized with a lock so concurrent pipelines
never lose increments.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from typing import Any

from carscout.crawler.fetch_result import ChannelKind
from carscout.utils.config import StrategyConfig
from carscout.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BlockingStats:
    """Client-lifetime blocking statistics.

    Attributes:
        consecutive_direct_failures: Direct channel runs failed in a row.
        last_direct_success: Clock time of the last direct success (None: never).
        proxy_success_rate: EMA of proxy channel outcomes (1 success, 0 failure).
        total_requests: Top-level fetches that reached the network pipeline.
    """

    consecutive_direct_failures: int = 0
    last_direct_success: float | None = None
    proxy_success_rate: float = 1.0
    total_requests: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StrategySelector:
    """Owns BlockingStats and turns them into a channel order."""

    def __init__(
        self,
        config: StrategyConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or StrategyConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._stats = self._initial_stats()

    def _initial_stats(self) -> BlockingStats:
        return BlockingStats(proxy_success_rate=self.config.initial_proxy_success_rate)

    def snapshot(self) -> BlockingStats:
        """Copy of the current statistics."""
        with self._lock:
            return replace(self._stats)

    def reset(self) -> None:
        with self._lock:
            self._stats = self._initial_stats()
        logger.info("Blocking stats reset")

    def should_prefer_proxy(self) -> bool:
        with self._lock:
            return self._should_prefer_proxy_unlocked()

    def _should_prefer_proxy_unlocked(self) -> bool:
        stats = self._stats
        if stats.consecutive_direct_failures >= self.config.direct_failure_threshold:
            return True
        if stats.last_direct_success is not None:
            age = self._clock() - stats.last_direct_success
            if age > self.config.direct_success_max_age_seconds:
                return True
        return False

    def channel_order(
        self,
        *,
        relay_enabled: bool,
        prefer_proxy: bool | None = None,
        skip_direct_if_blocked: bool = True,
    ) -> list[ChannelKind]:
        """Decide the channel order for one top-level fetch.

        Args:
            relay_enabled: Relay credentials are configured.
            prefer_proxy: Caller override; None uses the computed preference.
            skip_direct_if_blocked: Demote the direct channel once the failure
                threshold is reached even when the caller prefers direct.

        Returns:
            Channels to try, in order. Direct-only when the relay is disabled.
        """
        with self._lock:
            if prefer_proxy is None:
                prefer_proxy = self._should_prefer_proxy_unlocked()
            direct_first = not prefer_proxy and (
                not skip_direct_if_blocked
                or self._stats.consecutive_direct_failures < self.config.direct_failure_threshold
            )

        if not relay_enabled:
            return [ChannelKind.DIRECT]
        if direct_first:
            return [ChannelKind.DIRECT, ChannelKind.PROXY]
        return [ChannelKind.PROXY, ChannelKind.DIRECT]

    def record_request(self) -> None:
        with self._lock:
            self._stats.total_requests += 1

    def record_outcome(self, channel: ChannelKind, success: bool) -> None:
        """Update statistics with one channel run outcome."""
        with self._lock:
            stats = self._stats
            if channel is ChannelKind.DIRECT:
                if success:
                    stats.consecutive_direct_failures = 0
                    stats.last_direct_success = self._clock()
                else:
                    stats.consecutive_direct_failures += 1
            else:
                alpha = self.config.proxy_ema_alpha
                outcome = 1.0 if success else 0.0
                stats.proxy_success_rate = alpha * outcome + (1 - alpha) * stats.proxy_success_rate
            snapshot = replace(stats)

        logger.debug(
            "Blocking stats updated",
            channel=channel.value,
            success=success,
            consecutive_direct_failures=snapshot.consecutive_direct_failures,
            proxy_success_rate=round(snapshot.proxy_success_rate, 3),
        )
