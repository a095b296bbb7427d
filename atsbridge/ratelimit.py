"""
Rate limit compliance for atsbridge.

The executor consults a ``RateLimitChecker`` after every response from a
rate-limited provider, before the response is treated as a success. The
checker answers with a verdict:

- ok: proceed
- wait(seconds): pause this call only, then proceed (or re-send a 429)
- raise RateLimitExceeded: the wait would be too long; fail the call

Token accounting belongs to the provider; ``HeaderRateLimitChecker`` only
reads what the provider reports in its response headers. One checker is
created per integration, so the bookkeeping never crosses tenants.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from atsbridge.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitVerdict:
    """What the executor should do with a response."""

    wait_seconds: float = 0.0

    @classmethod
    def ok(cls) -> RateLimitVerdict:
        return cls()

    @classmethod
    def wait(cls, seconds: float) -> RateLimitVerdict:
        return cls(wait_seconds=max(0.0, seconds))

    @property
    def should_wait(self) -> bool:
        return self.wait_seconds > 0


class RateLimitChecker(Protocol):
    """Consulted after every response from a rate-limited provider."""

    def check(self, headers: httpx.Headers, status: int) -> RateLimitVerdict:
        """
        Inspect a response.

        Raises:
            RateLimitExceeded: If the provider cannot be called again soon
                enough to wait for it
        """
        ...


def _parse_number(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HeaderRateLimitChecker:
    """
    Reads ``x-rate-limit-*`` and ``Retry-After`` response headers.

    A 429, or a response reporting zero remaining calls, asks the caller to
    wait until the reported reset. Waits longer than ``max_wait`` fail fast.

    Example:
        checker = HeaderRateLimitChecker("icims", max_wait=60.0)
        verdict = checker.check(response.headers, response.status)
    """

    LIMIT_HEADER = "x-rate-limit-limit"
    REMAINING_HEADER = "x-rate-limit-remaining"
    RESET_HEADER = "x-rate-limit-reset"
    RETRY_AFTER_HEADER = "retry-after"

    def __init__(self, provider: str, *, max_wait: float = 60.0, default_wait: float = 1.0):
        self.provider = provider
        self.max_wait = max_wait
        self.default_wait = default_wait
        self.limit: float | None = None
        self.remaining: float | None = None

    def check(self, headers: httpx.Headers, status: int) -> RateLimitVerdict:
        limit = _parse_number(headers.get(self.LIMIT_HEADER))
        remaining = _parse_number(headers.get(self.REMAINING_HEADER))
        if limit is not None:
            self.limit = limit
        if remaining is not None:
            self.remaining = remaining

        exhausted = remaining is not None and remaining <= 0
        if status != 429 and not exhausted:
            return RateLimitVerdict.ok()

        delay = _parse_number(headers.get(self.RETRY_AFTER_HEADER))
        if delay is None:
            delay = _parse_number(headers.get(self.RESET_HEADER))
        if delay is None:
            delay = self.default_wait

        if delay > self.max_wait:
            raise RateLimitExceeded(
                f"Rate limit exhausted, reset in {delay:.0f}s",
                self.provider,
                status_code=status,
                retry_after=delay,
            )

        logger.info(f"[{self.provider}] Rate limit reached, waiting {delay:.2f}s")
        return RateLimitVerdict.wait(delay)


__all__ = [
    "HeaderRateLimitChecker",
    "RateLimitChecker",
    "RateLimitVerdict",
]
