"""Anti-bot page detection for channel responses.

Blocking pages are frequently served with a 200 status, so every response
body is checked, not only error responses. Signatures are plain data:
ordered (pattern, label, hard) entries matched case-insensitively against
the whole body. The first matching signature wins, so list order is the
tie-break for classification.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from carscout.utils.config import Settings


@dataclass(frozen=True)
class BlockingSignature:
    """Known text pattern of an anti-automation response.

    Attributes:
        pattern: Regular expression, matched case-insensitively.
        label: Human-readable classification.
        hard: Further attempts on the same channel are futile.
    """

    pattern: str
    label: str
    hard: bool = False
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", re.compile(self.pattern, re.IGNORECASE))

    def matches(self, text: str) -> bool:
        return self._regex.search(text) is not None


@dataclass(frozen=True)
class HeaderSignature:
    """Response header value that marks a challenge response."""

    header: str
    value_pattern: str
    label: str
    hard: bool = False

    def matches(self, headers: Mapping[str, str]) -> bool:
        wanted = self.header.lower()
        for key, value in headers.items():
            if key.lower() == wanted and re.search(self.value_pattern, value, re.IGNORECASE):
                return True
        return False


@dataclass(frozen=True)
class BlockingVerdict:
    """Classification of a blocked response."""

    label: str
    hard: bool
    pattern: str


# Order matters: first match wins.
DEFAULT_SIGNATURES: tuple[BlockingSignature, ...] = (
    # Challenge-page vendor used by the marketplace; retries never clear it
    BlockingSignature(r"shieldsquare", "ShieldSquare Captcha blocking", hard=True),
    # Reverse-proxy challenge
    BlockingSignature(
        r"cloudflare|_cf_chl_opt|cf-browser-verification",
        "Cloudflare protection",
    ),
    BlockingSignature(r"captcha", "CAPTCHA challenge"),
    BlockingSignature(r"bot detection", "Bot detection"),
    BlockingSignature(r"rate limit", "Rate limiting"),
    BlockingSignature(r"access denied", "Access denied"),
)

DEFAULT_HEADER_SIGNATURES: tuple[HeaderSignature, ...] = (
    HeaderSignature("cf-mitigated", r"challenge", "Cloudflare protection"),
)


class BlockingDetector:
    """Classifies response bodies (and headers) as blocked or not."""

    def __init__(
        self,
        signatures: Iterable[BlockingSignature] = DEFAULT_SIGNATURES,
        header_signatures: Iterable[HeaderSignature] = DEFAULT_HEADER_SIGNATURES,
    ) -> None:
        self.signatures: tuple[BlockingSignature, ...] = tuple(signatures)
        self.header_signatures: tuple[HeaderSignature, ...] = tuple(header_signatures)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "BlockingDetector":
        """Built-in signatures followed by any configured extras."""
        extras = [
            BlockingSignature(s.pattern, s.label, hard=s.hard)
            for s in settings.blocking.extra_signatures
        ]
        return cls(signatures=(*DEFAULT_SIGNATURES, *extras))

    def detect(
        self,
        content: str | bytes,
        headers: Mapping[str, str] | None = None,
    ) -> BlockingVerdict | None:
        """Check if a response is an anti-bot page.

        Args:
            content: Response body.
            headers: Response headers (optional).

        Returns:
            Verdict of the first matching signature, or None if not blocked.
        """
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")

        for signature in self.signatures:
            if signature.matches(content):
                return BlockingVerdict(signature.label, signature.hard, signature.pattern)

        if headers:
            for header_signature in self.header_signatures:
                if header_signature.matches(headers):
                    return BlockingVerdict(
                        header_signature.label,
                        header_signature.hard,
                        f"{header_signature.header}: {header_signature.value_pattern}",
                    )

        return None
