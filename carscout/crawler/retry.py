"""
Retry/backoff controller for one channel run.

Attempts are strictly sequential. Each response is classified in this order:
1. Blocking signature (any status, 2xx included)
2. Not-found: refresh the build identifier and retry the same attempt once
3. Other non-2xx status
4. Body parse

A hard-block verdict ends the channel run immediately; any other failure
sleeps `policy.delay_for(attempt, channel)` and tries again until the attempt
budget is spent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from carscout.crawler.challenge_detector import BlockingDetector, BlockingVerdict
from carscout.crawler.errors import ResponseParseError, TransportError
from carscout.crawler.fetch_result import (
    AttemptOutcome,
    ChannelResponse,
    FetchAttempt,
)
from carscout.crawler.http_fetcher import BaseChannel
from carscout.crawler.id_resolver import BuildIdResolver
from carscout.utils.backoff import BackoffPolicy
from carscout.utils.logging import get_logger

logger = get_logger(__name__)

_PREVIEW_CHARS = 200

T = TypeVar("T")


@dataclass
class ChannelRunResult(Generic[T]):
    """Outcome of one channel's full retry budget."""

    payload: T | None
    attempts: list[FetchAttempt] = field(default_factory=list)
    short_circuited: bool = False

    @property
    def succeeded(self) -> bool:
        return self.payload is not None


class RetryController:
    """Drives one channel through bounded retries with linear backoff."""

    def __init__(
        self,
        policy: BackoffPolicy,
        detector: BlockingDetector,
        resolver: BuildIdResolver,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self.detector = detector
        self.resolver = resolver
        self._sleep = sleep

    async def run(
        self,
        channel: BaseChannel,
        *,
        url_for: Callable[[str], str],
        headers: dict[str, str],
        parse: Callable[[str], T],
        request_id: str,
        policy: BackoffPolicy | None = None,
    ) -> ChannelRunResult[T]:
        """Run attempts on `channel` until success, hard block or exhaustion.

        Args:
            channel: Channel executor.
            url_for: Builds the target URL for a build identifier.
            headers: Request headers (forwarded by the relay as well).
            parse: Converts a successful body into the payload; raises
                ResponseParseError on unexpected shape.
            request_id: Top-level request identifier recorded on each attempt.
            policy: Per-call policy (default: controller policy).

        Returns:
            ChannelRunResult with the payload (None on failure) and attempts.
        """
        policy = policy or self.policy
        attempts: list[FetchAttempt] = []

        for attempt_number in range(1, policy.max_attempts + 1):
            logger.info(
                "Channel attempt",
                channel=channel.kind.value,
                attempt=attempt_number,
                max_attempts=policy.max_attempts,
            )
            attempt, payload = await self._attempt(
                channel, attempt_number, url_for, headers, parse, request_id
            )
            attempts.append(attempt)

            if attempt.succeeded:
                return ChannelRunResult(payload, attempts)

            if attempt.hard_block:
                logger.warning(
                    "Hard block detected, skipping remaining attempts",
                    channel=channel.kind.value,
                    blocked_by=attempt.blocked_by,
                    attempt=attempt_number,
                )
                return ChannelRunResult(None, attempts, short_circuited=True)

            if attempt_number < policy.max_attempts:
                delay = policy.delay_for(attempt_number, channel.kind)
                logger.info(
                    "Retrying after failure",
                    channel=channel.kind.value,
                    outcome=attempt.outcome.value if attempt.outcome else None,
                    attempt=attempt_number,
                    delay_seconds=round(delay, 2),
                )
                await self._sleep(delay)

        return ChannelRunResult(None, attempts)

    async def _attempt(
        self,
        channel: BaseChannel,
        attempt_number: int,
        url_for: Callable[[str], str],
        headers: dict[str, str],
        parse: Callable[[str], T],
        request_id: str,
    ) -> tuple[FetchAttempt, T | None]:
        build_id = self.resolver.build_id
        attempt = FetchAttempt(
            request_id=request_id,
            channel=channel.kind,
            attempt=attempt_number,
            url=url_for(build_id),
        )

        try:
            response = await channel.fetch(attempt.url, headers)
        except TransportError as e:
            return self._transport_failure(attempt, e), None

        verdict = self.detector.detect(response.text, response.headers)

        if verdict is None and response.is_not_found:
            logger.info("Not found, refreshing build ID", channel=channel.kind.value)
            new_build_id = await self.resolver.refresh(build_id)
            if new_build_id is not None:
                attempt.url = url_for(new_build_id)
                attempt.identifier_refreshed = True
                try:
                    response = await channel.fetch(attempt.url, headers)
                except TransportError as e:
                    return self._transport_failure(attempt, e), None
                verdict = self.detector.detect(response.text, response.headers)

        return self._classify(attempt, response, verdict, parse)

    def _transport_failure(self, attempt: FetchAttempt, error: TransportError) -> FetchAttempt:
        attempt.outcome = AttemptOutcome.TRANSPORT_ERROR
        attempt.reason = str(error)
        return attempt

    def _classify(
        self,
        attempt: FetchAttempt,
        response: ChannelResponse,
        verdict: BlockingVerdict | None,
        parse: Callable[[str], T],
    ) -> tuple[FetchAttempt, T | None]:
        attempt.status = response.status

        if verdict is not None:
            attempt.outcome = AttemptOutcome.BLOCKED
            attempt.blocked_by = verdict.label
            attempt.hard_block = verdict.hard
            attempt.reason = verdict.label
            logger.warning(
                "Blocking detected",
                channel=attempt.channel.value,
                status=response.status,
                blocked_by=verdict.label,
            )
            return attempt, None

        if response.is_not_found:
            attempt.outcome = AttemptOutcome.STALE_IDENTIFIER
            attempt.reason = f"HTTP {response.status}: build ID not recognized"
            return attempt, None

        if not response.ok:
            attempt.outcome = AttemptOutcome.HTTP_ERROR
            preview = response.text[:_PREVIEW_CHARS].strip()
            attempt.reason = f"HTTP {response.status}" + (f" - {preview}" if preview else "")
            return attempt, None

        try:
            payload = parse(response.text)
        except ResponseParseError as e:
            attempt.outcome = AttemptOutcome.PARSE_ERROR
            attempt.reason = str(e)
            logger.error(
                "Processing failed",
                channel=attempt.channel.value,
                content_type=response.content_type,
                error=str(e),
            )
            return attempt, None

        attempt.outcome = AttemptOutcome.SUCCESS
        return attempt, payload
