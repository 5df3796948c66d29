"""
Build identifier resolution.

The data endpoint path embeds a build identifier that the origin rotates
without notice. A not-found response on the data endpoint is read as
"identifier stale": the human-facing landing page is fetched and scanned
for the current identifier.
"""

import asyncio
import re
from collections.abc import Sequence

from carscout.crawler.challenge_detector import BlockingDetector
from carscout.crawler.errors import TransportError
from carscout.crawler.http_fetcher import BaseChannel
from carscout.utils.logging import get_logger

logger = get_logger(__name__)

# Tried in order, first match wins.
DEFAULT_BUILD_ID_PATTERNS: tuple[str, ...] = (
    r'"buildId":"([^"]+)"',
    r"buildId.*?[\"']([^\"']+)[\"']",
    r"_next/data/([^/]+)/",
)


def extract_build_id(html: str, patterns: Sequence[str] = DEFAULT_BUILD_ID_PATTERNS) -> str | None:
    """Find the build identifier in landing-page HTML.

    Args:
        html: Landing page body.
        patterns: Regular expressions with one capture group, in priority order.

    Returns:
        The first captured identifier, or None if no pattern matches.
    """
    for pattern in patterns:
        match = re.search(pattern, html)
        if match and match.group(1):
            return match.group(1)
    return None


class BuildIdResolver:
    """Owns the client's current build identifier and refreshes it on demand.

    Refreshes are serialized: when several pipelines hit a stale identifier
    at once, the first one scrapes the landing page and the others reuse its
    result instead of issuing their own landing-page requests.
    """

    def __init__(
        self,
        initial_build_id: str,
        landing_url: str,
        channel: BaseChannel,
        headers: dict[str, str] | None = None,
        patterns: Sequence[str] = DEFAULT_BUILD_ID_PATTERNS,
        detector: BlockingDetector | None = None,
    ) -> None:
        self._build_id = initial_build_id
        self.landing_url = landing_url
        self.channel = channel
        self.headers = dict(headers or {})
        self.patterns = tuple(patterns)
        self.detector = detector or BlockingDetector()
        self._lock = asyncio.Lock()

    @property
    def build_id(self) -> str:
        return self._build_id

    async def refresh(self, stale_build_id: str) -> str | None:
        """Recover a replacement for `stale_build_id`.

        Args:
            stale_build_id: Identifier embedded in the URL that got not-found.

        Returns:
            A different, current identifier to retry with, or None if none
            could be found (identifier left unchanged).
        """
        async with self._lock:
            if self._build_id != stale_build_id:
                logger.info(
                    "Build ID already refreshed",
                    stale=stale_build_id,
                    current=self._build_id,
                )
                return self._build_id

            logger.info("Updating build ID", landing_url=self.landing_url)
            try:
                response = await self.channel.fetch(self.landing_url, self.headers)
            except TransportError as e:
                logger.error("Failed to update build ID", error=str(e))
                return None

            found = extract_build_id(response.text, self.patterns)
            if found is None:
                verdict = self.detector.detect(response.text, response.headers)
                if verdict is not None:
                    logger.warning(
                        "Landing page blocked",
                        status=response.status,
                        blocked_by=verdict.label,
                    )
                else:
                    logger.warning("Could not find build ID in HTML", status=response.status)
                return None
            if found == stale_build_id:
                logger.info("Landing page reports the same build ID", build_id=found)
                return None

            logger.info("Updated build ID", old=self._build_id, new=found)
            self._build_id = found
            return found
