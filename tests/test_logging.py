"""
Tests for logging helpers.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|----------------------|--------------------------------------|-----------------|-------|
| TC-LG-N-01 | event with token/authorization | Equivalence – redaction | values masked | - |
| TC-LG-B-01 | empty secret value | Boundary – empty | left as is | - |
| TC-LG-N-02 | LogContext block | Equivalence – scope | bound inside, removed after | - |
| TC-LG-N-03 | nested LogContext | Equivalence – scope | outer value restored | - |
| TC-LG-N-04 | concurrent tasks | Equivalence – isolation | each task sees its own id | - |
"""

import asyncio

import pytest
import structlog

from carscout.utils.logging import LogContext, _redact_secrets


class TestRedaction:
    """Tests for the secret-masking processor."""

    def test_secret_keys_masked(self) -> None:
        """Test credential-bearing keys are masked, others kept."""
        event = {"event": "Relay call", "token": "abc", "Authorization": "Bearer abc", "zone": "z"}

        result = _redact_secrets(None, "info", event)

        assert result["token"] == "***"
        assert result["Authorization"] == "***"
        assert result["zone"] == "z"

    def test_empty_secret_untouched(self) -> None:
        """Test empty values are not replaced."""
        result = _redact_secrets(None, "info", {"event": "x", "token": None})

        assert result["token"] is None


class TestLogContext:
    """Tests for LogContext."""

    def test_binds_and_unbinds(self) -> None:
        """Test context is present only inside the block."""
        with LogContext(request_id="req-1-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-1-1"

        assert "request_id" not in structlog.contextvars.get_contextvars()

    def test_nested_restores_outer(self) -> None:
        """Test the outer value returns after a nested block."""
        with LogContext(request_id="outer"):
            with LogContext(request_id="inner"):
                assert structlog.contextvars.get_contextvars()["request_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["request_id"] == "outer"

    @pytest.mark.asyncio
    async def test_task_isolation(self) -> None:
        """Test concurrent tasks keep their own request id.

        Given: Two tasks binding different request ids
        When: They interleave at an await point
        Then: Each reads back its own id
        """

        async def worker(request_id: str) -> str:
            with LogContext(request_id=request_id):
                await asyncio.sleep(0)
                return structlog.contextvars.get_contextvars()["request_id"]

        # When
        first, second = await asyncio.gather(worker("req-a"), worker("req-b"))

        # Then
        assert (first, second) == ("req-a", "req-b")
