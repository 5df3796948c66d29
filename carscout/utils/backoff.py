"""
Linear backoff policy for channel retries.

Shared by:
- RetryController (carscout/crawler/retry.py)
- MarketClient per-call overrides (carscout/market/client.py)

delay(attempt, channel) = base_delay * attempt * channel_multiplier

The proxy relay uses a larger multiplier than the direct channel: relay
calls are billed and the relay already rotates exits, so hammering it
gains little.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from carscout.crawler.fetch_result import ChannelKind
    from carscout.utils.config import Settings


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget and delay schedule for one channel run.

    Attributes:
        max_attempts: Attempts per channel (>= 1). Attempt numbers are 1-based.
        base_delay: Seconds multiplied by the attempt number.
        direct_multiplier: Channel factor for the direct channel.
        proxy_multiplier: Channel factor for the proxy relay channel.

    Example:
        >>> policy = BackoffPolicy(max_attempts=3, base_delay=1.0)
        >>> policy.delay_for(2, ChannelKind.PROXY)
        4.0
    """

    max_attempts: int = 2
    base_delay: float = 1.0
    direct_multiplier: float = 1.0
    proxy_multiplier: float = 2.0

    def __post_init__(self) -> None:
        """Validate policy."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.direct_multiplier < 0 or self.proxy_multiplier < 0:
            raise ValueError("multipliers must be non-negative")

    def multiplier(self, channel: ChannelKind) -> float:
        from carscout.crawler.fetch_result import ChannelKind

        if channel is ChannelKind.PROXY:
            return self.proxy_multiplier
        return self.direct_multiplier

    def delay_for(self, attempt: int, channel: ChannelKind) -> float:
        """Seconds to wait after failed attempt `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        return self.base_delay * attempt * self.multiplier(channel)

    def total_delay(self, channel: ChannelKind) -> float:
        """Worst-case sleep for a full channel run (no sleep after the last attempt).

        Example:
            >>> BackoffPolicy(max_attempts=3, base_delay=1.0).total_delay(ChannelKind.DIRECT)
            3.0
        """
        return sum(self.delay_for(n, channel) for n in range(1, self.max_attempts))

    def with_overrides(
        self,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> BackoffPolicy:
        """Return a copy with per-call overrides applied."""
        changes: dict[str, float | int] = {}
        if max_attempts is not None:
            changes["max_attempts"] = max_attempts
        if base_delay is not None:
            changes["base_delay"] = base_delay
        return replace(self, **changes) if changes else self

    @classmethod
    def from_settings(cls, settings: Settings) -> BackoffPolicy:
        retry = settings.retry
        return cls(
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            direct_multiplier=retry.direct_multiplier,
            proxy_multiplier=retry.proxy_multiplier,
        )


#: Policy for tests and dry runs: same attempt budget, no sleeping.
ZERO_DELAY = BackoffPolicy(max_attempts=2, base_delay=0.0)
