"""
Tests for anti-bot blocking detection.

Test Classification:
- All tests here are unit tests (no external dependencies)

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-BD-N-01 | ShieldSquare page | Equivalence – normal | hard block | - |
| TC-BD-N-02 | Cloudflare challenge markers | Equivalence – normal | "Cloudflare protection" | - |
| TC-BD-N-03 | Generic CAPTCHA | Equivalence – normal | "CAPTCHA challenge" | - |
| TC-BD-N-04 | Bot detection / rate limit / access denied phrasing | Equivalence – normal | matching label | - |
| TC-BD-N-05 | Mixed case | Equivalence – case | matched | case-insensitive |
| TC-BD-N-06 | bytes body | Equivalence – type | decoded and matched | - |
| TC-BD-P-01 | ShieldSquare + captcha text | Equivalence – priority | ShieldSquare wins | first match wins |
| TC-BD-P-02 | Cloudflare + captcha text | Equivalence – priority | Cloudflare wins | list order |
| TC-BD-A-01 | Listing JSON | Equivalence – abnormal | None | - |
| TC-BD-A-02 | JSON with rateLimit key | Equivalence – abnormal | None | false positive test |
| TC-BD-A-03 | Empty body | Boundary – empty | None | - |
| TC-BD-H-01 | cf-mitigated: challenge header | Equivalence – header | "Cloudflare protection" | - |
| TC-BD-H-02 | Unrelated headers | Equivalence – abnormal | None | - |
| TC-BD-C-01 | Extra signature from settings | Equivalence – config | appended after built-ins | - |
| TC-BD-C-02 | Custom signature list | Equivalence – data-driven | only custom labels | - |
"""

import pytest

from carscout.crawler.challenge_detector import (
    DEFAULT_SIGNATURES,
    BlockingDetector,
    BlockingSignature,
)
from carscout.utils.config import BlockingConfig, Settings, SignatureConfig
from tests.conftest import CLOUDFLARE_PAGE, SHIELDSQUARE_PAGE, make_payload, make_raw_listing


@pytest.fixture
def detector() -> BlockingDetector:
    return BlockingDetector()


class TestBodySignatures:
    """Tests for body signature matching."""

    def test_shieldsquare_is_hard_block(self, detector: BlockingDetector) -> None:
        """Test ShieldSquare challenge page is a hard block.

        Given: ShieldSquare captcha page served with 200
        When: detect() is called
        Then: Verdict is the ShieldSquare label with hard=True
        """
        # When
        verdict = detector.detect(SHIELDSQUARE_PAGE)

        # Then
        assert verdict is not None
        assert verdict.label == "ShieldSquare Captcha blocking"
        assert verdict.hard is True

    def test_cloudflare_challenge(self, detector: BlockingDetector) -> None:
        """Test Cloudflare challenge markers are detected as soft block."""
        verdict = detector.detect(CLOUDFLARE_PAGE)

        assert verdict is not None
        assert verdict.label == "Cloudflare protection"
        assert verdict.hard is False

    @pytest.mark.parametrize(
        "body,label",
        [
            ("<p>Please solve the CAPTCHA</p>", "CAPTCHA challenge"),
            ("<p>Bot detection triggered</p>", "Bot detection"),
            ("<h1>Rate limit exceeded</h1>", "Rate limiting"),
            ("<h1>Access Denied</h1>", "Access denied"),
        ],
    )
    def test_generic_phrases(self, detector: BlockingDetector, body: str, label: str) -> None:
        """Test generic blocking phrasing maps to its label."""
        verdict = detector.detect(body)

        assert verdict is not None
        assert verdict.label == label
        assert verdict.hard is False

    def test_case_insensitive(self, detector: BlockingDetector) -> None:
        """Test matching ignores case."""
        verdict = detector.detect("SHIELDSQUARE")

        assert verdict is not None
        assert verdict.hard is True

    def test_bytes_body(self, detector: BlockingDetector) -> None:
        """Test bytes bodies are decoded before matching."""
        verdict = detector.detect(CLOUDFLARE_PAGE.encode("utf-8"))

        assert verdict is not None
        assert verdict.label == "Cloudflare protection"


class TestSignaturePriority:
    """Tests for first-match-wins ordering."""

    def test_shieldsquare_beats_captcha(self, detector: BlockingDetector) -> None:
        """Test hard signature wins over generic captcha text in the same body."""
        # Given: Body matching both shieldsquare and captcha
        body = "captcha served by shieldsquare"

        # When
        verdict = detector.detect(body)

        # Then
        assert verdict is not None
        assert verdict.label == "ShieldSquare Captcha blocking"

    def test_cloudflare_beats_captcha(self, detector: BlockingDetector) -> None:
        """Test list order decides between two soft signatures."""
        verdict = detector.detect("cloudflare turnstile captcha")

        assert verdict is not None
        assert verdict.label == "Cloudflare protection"

    def test_default_order_is_stable(self) -> None:
        """Test the built-in list keeps its documented order."""
        labels = [s.label for s in DEFAULT_SIGNATURES]
        assert labels == [
            "ShieldSquare Captcha blocking",
            "Cloudflare protection",
            "CAPTCHA challenge",
            "Bot detection",
            "Rate limiting",
            "Access denied",
        ]


class TestNotBlocked:
    """False positive prevention."""

    def test_listing_json_is_not_blocked(self, detector: BlockingDetector) -> None:
        """Test a real data payload passes."""
        body = make_payload(private=[make_raw_listing("abc")])
        assert detector.detect(body) is None

    def test_camel_case_rate_limit_key(self, detector: BlockingDetector) -> None:
        """Test JSON keys resembling phrases do not match."""
        assert detector.detect('{"rateLimit": 100, "accessDeniedCount": 0}') is None

    def test_empty_body(self, detector: BlockingDetector) -> None:
        """Test empty body is not blocked."""
        assert detector.detect("") is None


class TestHeaderSignatures:
    """Tests for header-based detection."""

    def test_cf_mitigated_header(self, detector: BlockingDetector) -> None:
        """Test cf-mitigated: challenge marks the response as blocked."""
        verdict = detector.detect("{}", headers={"CF-Mitigated": "challenge"})

        assert verdict is not None
        assert verdict.label == "Cloudflare protection"

    def test_unrelated_headers(self, detector: BlockingDetector) -> None:
        """Test ordinary headers do not trigger detection."""
        headers = {"content-type": "application/json", "server": "nginx"}
        assert detector.detect("{}", headers=headers) is None


class TestConfiguredSignatures:
    """Tests for data-driven signature lists."""

    def test_extra_signature_from_settings(self) -> None:
        """Test extra signatures are appended after the built-in list.

        Given: Settings with an extra hard signature
        When: Detector is built from settings
        Then: Extra signature matches, built-ins still take precedence
        """
        # Given
        settings = Settings(
            blocking=BlockingConfig(
                extra_signatures=[
                    SignatureConfig(pattern=r"perimeterx", label="PerimeterX", hard=True)
                ]
            )
        )

        # When
        detector = BlockingDetector.from_settings(settings)

        # Then
        assert len(detector.signatures) == len(DEFAULT_SIGNATURES) + 1
        verdict = detector.detect("blocked by PerimeterX")
        assert verdict is not None
        assert verdict.label == "PerimeterX"
        assert verdict.hard is True
        assert detector.detect("perimeterx captcha").label == "CAPTCHA challenge"

    def test_custom_signature_list(self) -> None:
        """Test a detector with only custom signatures ignores built-ins."""
        detector = BlockingDetector(
            signatures=[BlockingSignature(r"go away", "Custom")],
            header_signatures=[],
        )

        assert detector.detect("please go away").label == "Custom"
        assert detector.detect(SHIELDSQUARE_PAGE) is None
