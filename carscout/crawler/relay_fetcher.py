"""Proxy relay channel.

The relay service fetches the target URL on our behalf from an exit in the
configured country and returns the raw body. A 200 from the relay says
nothing about the content: the body may still be a challenge page, so the
response goes through the same blocking checks as a direct one.
"""

from typing import Any

import httpx

from carscout.crawler.errors import TransportError
from carscout.crawler.fetch_result import ChannelKind, ChannelResponse
from carscout.crawler.http_fetcher import BaseChannel
from carscout.utils.logging import get_logger

logger = get_logger(__name__)


class RelayChannel(BaseChannel):
    """Delegates the request, headers included, to a paid relay API."""

    kind = ChannelKind.PROXY

    def __init__(
        self,
        *,
        endpoint: str,
        token: str,
        zone: str,
        country: str = "IL",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize channel.

        Args:
            endpoint: Relay request endpoint.
            token: Bearer token for the relay API.
            zone: Relay zone identifier.
            country: Egress country code.
            timeout: Per-request timeout in seconds.
            client: Pre-built httpx client (tests inject a MockTransport client).
        """
        self.endpoint = endpoint
        self.zone = zone
        self.country = country
        self.timeout = timeout
        self._token = token
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def build_envelope(self, url: str, headers: dict[str, str]) -> dict[str, Any]:
        """JSON body understood by the relay."""
        return {
            "zone": self.zone,
            "url": url,
            "format": "raw",
            "country": self.country,
            "headers": headers,
        }

    async def fetch(self, url: str, headers: dict[str, str]) -> ChannelResponse:
        client = self._get_client()
        logger.debug("Relay request", url=url[:120], country=self.country)
        try:
            response = await client.post(
                self.endpoint,
                json=self.build_envelope(url, headers),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self._token}",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Relay transport error", url=url[:120], error=str(e) or type(e).__name__)
            raise TransportError(self.kind, url, e) from e

        logger.debug("Relay response", status=response.status_code)
        return ChannelResponse(
            status=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            url=url,
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("Relay channel closed")
