"""
Acquisition error taxonomy.

Only ExhaustionError crosses the client boundary. TransportError and
ResponseParseError are raised inside the pipeline and recorded on the
FetchAttempt that produced them.
"""

from collections import Counter
from typing import TYPE_CHECKING, Any

from carscout.crawler.fetch_result import AttemptOutcome, ChannelKind, FetchAttempt

if TYPE_CHECKING:
    from carscout.market.schemas import SearchParams


class AcquisitionError(Exception):
    """Base class for acquisition failures."""


class TransportError(AcquisitionError):
    """The network call itself failed (connection, DNS, timeout).

    Attributes:
        channel: Channel that raised.
        url: Target URL.
        cause: Underlying client-library exception.
    """

    def __init__(self, channel: ChannelKind, url: str, cause: BaseException | None = None):
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "transport failure"
        # Some client exceptions carry an empty message
        if cause is not None and not str(cause):
            detail = type(cause).__name__
        super().__init__(f"{channel.value} transport error: {detail}")
        self.channel = channel
        self.url = url
        self.cause = cause


class ResponseParseError(AcquisitionError):
    """HTTP-successful, unblocked body that is not the expected JSON shape."""

    def __init__(self, message: str, preview: str = ""):
        super().__init__(message)
        self.preview = preview


class ExhaustionError(AcquisitionError):
    """Every channel exhausted (or short-circuited) its retry budget.

    Attributes:
        request_id: Identifier of the failed top-level request.
        attempts: Ordered attempt history across all channels.
        params: Search parameters of the failed request.
    """

    def __init__(
        self,
        request_id: str,
        attempts: list[FetchAttempt],
        params: "SearchParams | None" = None,
    ):
        self.request_id = request_id
        self.attempts = list(attempts)
        self.params = params
        super().__init__(
            f"[{request_id}] failed to fetch listings after {len(self.attempts)} attempts"
        )

    def attempts_for(self, channel: ChannelKind) -> list[FetchAttempt]:
        return [a for a in self.attempts if a.channel is channel]

    def outcome_counts(self) -> dict[str, int]:
        counts = Counter(a.outcome.value for a in self.attempts if a.outcome is not None)
        return dict(counts)

    @property
    def blocked_everywhere(self) -> bool:
        """True when every attempt on every channel was an anti-bot page."""
        return bool(self.attempts) and all(
            a.outcome is AttemptOutcome.BLOCKED for a in self.attempts
        )

    @property
    def transport_failures_only(self) -> bool:
        return bool(self.attempts) and all(
            a.outcome is AttemptOutcome.TRANSPORT_ERROR for a in self.attempts
        )

    def summary(self) -> list[str]:
        return [a.describe() for a in self.attempts]

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "attempts": [a.to_dict() for a in self.attempts],
            "outcome_counts": self.outcome_counts(),
        }
