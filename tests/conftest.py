"""
Pytest fixtures and configuration for carscout tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies
  - DEFAULT: Tests without marker are auto-classified as unit
- @pytest.mark.integration: Several components wired together through
  MarketClient, network replaced by scripted fake channels

=============================================================================
Mock Strategy
=============================================================================

- Network: Prohibited. Pipeline tests use FakeChannel; DirectChannel tests
  inject a fake curl_cffi session; RelayChannel tests use httpx.MockTransport
- Time: ZERO_DELAY backoff policy, RecordingSleep and FakeClock
- Settings: Constructed directly, never read from the developer's .env
"""

import asyncio
import json
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

# Set test environment before importing anything else
os.environ["CARSCOUT_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["CARSCOUT_GENERAL__LOG_LEVEL"] = "DEBUG"

from carscout.crawler.fetch_result import ChannelKind, ChannelResponse  # noqa: E402
from carscout.crawler.http_fetcher import BaseChannel  # noqa: E402
from carscout.utils.backoff import ZERO_DELAY, BackoffPolicy  # noqa: E402
from carscout.utils.config import RelayConfig, Settings, get_settings  # noqa: E402

SHIELDSQUARE_PAGE = """
<html><head><title>Captcha</title></head>
<body><script src="https://validate.perfdrive.com/shieldsquare/captcha.js"></script></body>
</html>
"""

CLOUDFLARE_PAGE = """
<html><head><title>Just a moment...</title></head>
<body><div id="cf-browser-verification">Checking your browser</div></body>
</html>
"""


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with mocked external dependencies (<5s/test)"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without explicit markers are assumed to be unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Keep get_settings() from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Payload builders
# =============================================================================


def make_raw_listing(
    token: str,
    price: int = 100_000,
    year: int = 2020,
    **overrides: Any,
) -> dict[str, Any]:
    """Raw marketplace record in the data endpoint's shape."""
    raw: dict[str, Any] = {
        "token": token,
        "orderId": 1,
        "adType": "private",
        "price": price,
        "address": {"area": {"id": 1, "text": "Tel Aviv"}},
        "metaData": {
            "coverImage": f"https://img.example/{token}/cover.jpg",
            "images": [f"https://img.example/{token}/1.jpg"],
        },
        "commitment": ["No accidents"],
        "tags": [{"name": "Single owner", "id": 1, "priority": 1}],
        "manufacturer": {"id": 19, "text": "Toyota"},
        "model": {"id": 10226, "text": "Corolla"},
        "vehicleDates": {"yearOfProduction": year},
        "engineType": {"id": 1, "text": "Hybrid"},
        "hand": {"id": 1, "text": "First hand"},
    }
    raw.update(overrides)
    return raw


def make_payload(
    commercial: Iterable[dict[str, Any]] = (),
    private: Iterable[dict[str, Any]] = (),
) -> str:
    """Data endpoint body wrapping the given seller arrays."""
    return json.dumps(
        {
            "pageProps": {
                "dehydratedState": {
                    "queries": [
                        {
                            "state": {
                                "data": {
                                    "commercial": list(commercial),
                                    "private": list(private),
                                }
                            }
                        }
                    ]
                }
            }
        }
    )


def json_response(body: str, status: int = 200) -> ChannelResponse:
    return ChannelResponse(status=status, text=body, headers={"content-type": "application/json"})


def html_response(body: str, status: int = 200) -> ChannelResponse:
    return ChannelResponse(status=status, text=body, headers={"content-type": "text/html"})


def landing_page(build_id: str) -> ChannelResponse:
    return html_response(
        f'<html><script id="__NEXT_DATA__">{{"props":{{}},"buildId":"{build_id}"}}</script></html>'
    )


# =============================================================================
# Fake channels and time
# =============================================================================


class FakeChannel(BaseChannel):
    """Scripted channel.

    Data-endpoint requests consume `script` in order; the last item repeats
    once the script runs out. Any other URL is a landing-page request and
    gets `landing`. Exceptions in the script are raised.
    """

    def __init__(
        self,
        kind: ChannelKind,
        script: Iterable[ChannelResponse | Exception] = (),
        *,
        landing: ChannelResponse | Exception | None = None,
        handler: Callable[[str], ChannelResponse | Exception] | None = None,
    ) -> None:
        self.kind = kind
        self.script = list(script)
        self.landing = landing
        self.handler = handler
        self.calls: list[str] = []
        self.landing_calls: list[str] = []
        self.headers_seen: list[dict[str, str]] = []
        self.closed = False

    async def fetch(self, url: str, headers: dict[str, str]) -> ChannelResponse:
        self.headers_seen.append(headers)
        if "/_next/data/" not in url:
            self.landing_calls.append(url)
            item = self.landing if self.landing is not None else html_response("", 404)
        else:
            self.calls.append(url)
            if self.handler is not None:
                item = self.handler(url)
            elif len(self.script) > 1:
                item = self.script.pop(0)
            elif self.script:
                item = self.script[0]
            else:
                item = html_response("", 500)

        # Yield like a real round trip
        await asyncio.sleep(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with relay credentials configured."""
    return Settings(relay=RelayConfig(token="test-token", zone="test_zone"))


@pytest.fixture
def direct_only_settings() -> Settings:
    return Settings()


@pytest.fixture
def zero_policy() -> BackoffPolicy:
    return ZERO_DELAY


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(settings, zero_policy, recording_sleep, fake_clock):
    """Factory for MarketClient wired to fake channels."""
    from carscout.market.client import MarketClient

    def _make(
        direct: BaseChannel | None = None,
        relay: BaseChannel | None = None,
        *,
        policy: BackoffPolicy | None = None,
        client_settings: Settings | None = None,
    ) -> MarketClient:
        # Without a fake relay, run direct-only so nothing reaches the network
        if client_settings is None:
            client_settings = settings if relay is not None else Settings()
        return MarketClient(
            client_settings,
            direct=direct or FakeChannel(ChannelKind.DIRECT),
            relay=relay,
            policy=policy or zero_policy,
            sleep=recording_sleep,
            clock=fake_clock,
        )

    return _make
