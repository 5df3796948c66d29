"""
Request planning for the marketplace data endpoint.

URL construction is a pure function of (SearchParams, build identifier):
the same inputs always give the same URL, and nothing here feeds back into
cache keys.
"""

from urllib.parse import urlencode

from carscout.market.schemas import SearchParams
from carscout.utils.config import MarketplaceConfig


class RequestPlanner:
    """Builds data-endpoint URLs and browser-like request headers."""

    def __init__(self, config: MarketplaceConfig | None = None) -> None:
        self.config = config or MarketplaceConfig()

    @property
    def landing_url(self) -> str:
        return self.config.landing_url

    def query_params(self, params: SearchParams) -> dict[str, str]:
        """Query parameters in the order the site's own client sends them."""
        params = params.normalized()
        return {
            "manufacturer": str(params.manufacturer),
            "model": str(params.model),
            "year": f"{params.year_from}-{params.year_to}",
            "km": f"{params.km_from}-{params.km_to}",
            "hand": params.hand or self.config.default_hand,
            "price": params.price_floor or self.config.price_floor,
        }

    def build_url(self, params: SearchParams, build_id: str) -> str:
        path = self.config.data_path_template.format(build_id=build_id)
        return f"{self.config.origin}{path}?{urlencode(self.query_params(params))}"

    def data_headers(self) -> dict[str, str]:
        """Headers of a same-origin data fetch issued by the listings page."""
        return {
            "accept": "*/*",
            "accept-language": self.config.accept_language,
            "user-agent": self.config.user_agent,
            "referer": self.config.landing_url,
            "sec-ch-ua": self.config.sec_ch_ua,
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": self.config.sec_ch_ua_platform,
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "same-origin",
            "x-nextjs-data": "1",
            "priority": "u=1, i",
        }

    def landing_headers(self) -> dict[str, str]:
        """Headers of a top-level navigation to the landing page."""
        return {
            "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "accept-language": self.config.accept_language,
            "user-agent": self.config.user_agent,
            "sec-ch-ua": self.config.sec_ch_ua,
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": self.config.sec_ch_ua_platform,
            "sec-fetch-dest": "document",
            "sec-fetch-mode": "navigate",
            "sec-fetch-site": "none",
            "sec-fetch-user": "?1",
            "upgrade-insecure-requests": "1",
        }
