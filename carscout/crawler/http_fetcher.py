"""Channel executors: one HTTP round trip per call.

The direct channel uses curl_cffi with browser impersonation so the TLS and
HTTP/2 fingerprint matches the headers we send. Executors never interpret
response content; classification happens in the retry controller.
"""

from abc import ABC, abstractmethod
from typing import Any

from curl_cffi.requests import AsyncSession

from carscout.crawler.errors import TransportError
from carscout.crawler.fetch_result import ChannelKind, ChannelResponse
from carscout.utils.logging import get_logger

logger = get_logger(__name__)


class BaseChannel(ABC):
    """Performs one HTTP GET of a target URL through some delivery path."""

    kind: ChannelKind

    @abstractmethod
    async def fetch(self, url: str, headers: dict[str, str]) -> ChannelResponse:
        """Fetch `url` with `headers`.

        Returns:
            ChannelResponse for any HTTP status.

        Raises:
            TransportError: The round trip itself failed.
        """

    async def close(self) -> None:
        """Release network resources."""


class DirectChannel(BaseChannel):
    """HTTP client using our own network identity (curl_cffi).

    Features:
    - Chrome impersonation for fingerprint consistency
    - Per-call timeout
    - Lazily created, reused session
    """

    kind = ChannelKind.DIRECT

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        impersonate: str = "chrome",
        session: Any | None = None,
    ) -> None:
        """Initialize channel.

        Args:
            timeout: Per-request timeout in seconds.
            impersonate: curl_cffi browser fingerprint target.
            session: Pre-built AsyncSession-compatible object (tests).
        """
        self.timeout = timeout
        self.impersonate = impersonate
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> Any:
        """Get HTTP session (lazy initialization)."""
        if self._session is None:
            self._session = AsyncSession(impersonate=self.impersonate)
        return self._session

    async def fetch(self, url: str, headers: dict[str, str]) -> ChannelResponse:
        session = self._get_session()
        logger.debug("Direct request", url=url[:120])
        try:
            response = await session.get(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except Exception as e:
            logger.warning("Direct transport error", url=url[:120], error=str(e) or type(e).__name__)
            raise TransportError(self.kind, url, e) from e

        logger.debug("Direct response", status=response.status_code)
        return ChannelResponse(
            status=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            url=str(response.url),
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            logger.debug("Direct channel closed")
