"""Fetch records shared by channel executors and the retry controller."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ChannelKind(str, Enum):
    """Delivery channel for one logical request."""

    DIRECT = "direct"  # Our own network identity
    PROXY = "proxy"  # Paid relay exiting from the target country


class AttemptOutcome(str, Enum):
    """Classified result of one channel attempt."""

    SUCCESS = "success"
    TRANSPORT_ERROR = "transport_error"  # Connection refused, DNS, timeout
    HTTP_ERROR = "http_error"  # Non-2xx other than not-found
    STALE_IDENTIFIER = "stale_identifier"  # Not-found that identifier refresh could not fix
    BLOCKED = "blocked"  # Anti-bot page, any status
    PARSE_ERROR = "parse_error"  # 2xx, not blocked, unexpected body shape


@dataclass
class ChannelResponse:
    """Raw result of one HTTP round trip, independent of the client library."""

    status: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""


@dataclass
class FetchAttempt:
    """One (channel, attempt number) record.

    `url` is the URL actually used; it changes when the build identifier
    was refreshed during the attempt.
    """

    request_id: str
    channel: ChannelKind
    attempt: int
    url: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    outcome: AttemptOutcome | None = None
    status: int | None = None
    reason: str | None = None
    blocked_by: str | None = None
    hard_block: bool = False
    identifier_refreshed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.request_id,
            "channel": self.channel.value,
            "attempt": self.attempt,
            "url": self.url,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value if self.outcome else None,
            "status": self.status,
            "reason": self.reason,
            "blocked_by": self.blocked_by,
            "hard_block": self.hard_block,
            "identifier_refreshed": self.identifier_refreshed,
        }

    def describe(self) -> str:
        """One-line summary used in failure logs."""
        outcome = self.outcome.value if self.outcome else "unknown"
        detail = self.blocked_by or self.reason or (f"HTTP {self.status}" if self.status else "")
        return f"{self.channel.value} attempt {self.attempt}: {outcome}" + (
            f" ({detail})" if detail else ""
        )
