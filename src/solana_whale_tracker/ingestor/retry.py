"""Bounded retry with backoff on throttling and endpoint rotation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import TypeVar

import httpx

from solana_whale_tracker.ingestor.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_CAP_SECONDS = 30.0

THROTTLED_STATUS_CODES = frozenset({429})


class ProviderError(Exception):
    """Base exception for provider call failures."""


class ThrottledError(ProviderError):
    """Raised when a provider signals that the caller is rate limited."""


class TransientError(ProviderError):
    """Raised on a connection-level failure where no response was received."""


class ErrorClass(Enum):
    """How the retry controller treats a failure."""

    THROTTLED = "throttled"
    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_error(error: BaseException) -> ErrorClass:
    """Map an exception raised by a provider call to a retry decision."""
    if isinstance(error, ThrottledError):
        return ErrorClass.THROTTLED
    if isinstance(error, TransientError):
        return ErrorClass.TRANSIENT
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code in THROTTLED_STATUS_CODES:
            return ErrorClass.THROTTLED
        return ErrorClass.FATAL
    if isinstance(error, httpx.TransportError):
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential delay ``base * 2**attempt`` capped at ``cap``."""
    return float(min(base * (2**attempt), cap))


class RetryController:
    """Runs one unit of provider work with retries and failover.

    Every attempt first takes a token from the shared rate limiter. Throttled
    failures rotate to the next endpoint and back off exponentially; transient
    failures retry straight away; anything else propagates on the spot. After
    ``max_retries + 1`` attempts the last failure is re-raised.

    Example:
        ```python
        controller = RetryController(
            limiter,
            endpoints=["https://rpc-a.example", "https://rpc-b.example"],
        )
        result = await controller.call(lambda url: client.post(url, json=body))
        ```
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        endpoints: Sequence[str] = (),
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
        backoff_cap: float = DEFAULT_BACKOFF_CAP_SECONDS,
        name: str = "provider",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            rate_limiter: Limiter consulted before every attempt.
            endpoints: Equivalent endpoint URLs to rotate through on throttling.
            max_retries: Retries after the first attempt.
            backoff_base: Base delay in seconds for throttling backoff.
            backoff_cap: Ceiling for a single backoff delay.
            name: Label used in log lines.
            sleep: Awaitable sleep, injectable for tests.
        """
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._rate_limiter = rate_limiter
        self._endpoints = list(endpoints)
        self._cursor = 0
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.name = name
        self._sleep = sleep

    @property
    def endpoint(self) -> str | None:
        """Endpoint the next attempt will use."""
        if not self._endpoints:
            return None
        return self._endpoints[self._cursor]

    @property
    def cursor(self) -> int:
        """Index of the current endpoint."""
        return self._cursor

    def rotate(self) -> str | None:
        """Advance to the next endpoint (round-robin)."""
        if len(self._endpoints) > 1:
            self._cursor = (self._cursor + 1) % len(self._endpoints)
            logger.info("%s: rotating to endpoint %s", self.name, self.endpoint)
        return self.endpoint

    async def call(self, work: Callable[[str | None], Awaitable[T]]) -> T:
        """Run ``work`` until it succeeds or the failure is not retryable.

        Args:
            work: Coroutine factory receiving the current endpoint.

        Returns:
            The first successful result.

        Raises:
            Exception: The fatal failure, or the last failure once all
                attempts are used.
        """
        attempts = self.max_retries + 1
        attempt = 0

        while True:
            await self._rate_limiter.acquire()
            try:
                return await work(self.endpoint)
            except Exception as e:
                kind = classify_error(e)
                if kind is ErrorClass.FATAL:
                    raise

                attempt += 1
                if kind is ErrorClass.THROTTLED:
                    self.rotate()
                if attempt >= attempts:
                    logger.error("%s failed after %d attempts: %s", self.name, attempts, e)
                    raise

                if kind is ErrorClass.THROTTLED:
                    delay = backoff_delay(attempt - 1, self.backoff_base, self.backoff_cap)
                    logger.warning(
                        "%s throttled (attempt %d/%d), backing off %.1fs",
                        self.name,
                        attempt,
                        attempts,
                        delay,
                    )
                    await self._sleep(delay)
                else:
                    logger.warning(
                        "%s transient failure (attempt %d/%d): %s",
                        self.name,
                        attempt,
                        attempts,
                        e,
                    )
