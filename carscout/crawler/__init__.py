"""
carscout crawler module.

Generic acquisition machinery: channels, blocking detection, build ID
recovery and bounded retries.
"""

from carscout.crawler.challenge_detector import (
    DEFAULT_HEADER_SIGNATURES,
    DEFAULT_SIGNATURES,
    BlockingDetector,
    BlockingSignature,
    BlockingVerdict,
    HeaderSignature,
)
from carscout.crawler.errors import (
    AcquisitionError,
    ExhaustionError,
    ResponseParseError,
    TransportError,
)
from carscout.crawler.fetch_result import (
    AttemptOutcome,
    ChannelKind,
    ChannelResponse,
    FetchAttempt,
)
from carscout.crawler.http_fetcher import BaseChannel, DirectChannel
from carscout.crawler.id_resolver import (
    DEFAULT_BUILD_ID_PATTERNS,
    BuildIdResolver,
    extract_build_id,
)
from carscout.crawler.relay_fetcher import RelayChannel
from carscout.crawler.retry import ChannelRunResult, RetryController

__all__ = [
    # Blocking detection
    "BlockingDetector",
    "BlockingSignature",
    "BlockingVerdict",
    "HeaderSignature",
    "DEFAULT_SIGNATURES",
    "DEFAULT_HEADER_SIGNATURES",
    # Errors
    "AcquisitionError",
    "TransportError",
    "ResponseParseError",
    "ExhaustionError",
    # Records
    "AttemptOutcome",
    "ChannelKind",
    "ChannelResponse",
    "FetchAttempt",
    # Channels
    "BaseChannel",
    "DirectChannel",
    "RelayChannel",
    # Build ID
    "BuildIdResolver",
    "DEFAULT_BUILD_ID_PATTERNS",
    "extract_build_id",
    # Retry
    "RetryController",
    "ChannelRunResult",
]
