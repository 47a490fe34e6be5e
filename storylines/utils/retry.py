"""Exponential backoff for upstream calls.

Failures are classified before deciding to retry:
- rate limit / resource exhaustion (HTTP 429, "resource_exhausted", "rate limit")
- server errors (HTTP 5xx, "internal")
Only those two classes are retried. Everything else propagates at once.

Usage:
    policy = RetryPolicy(retries=3, initial_delay=1.0, max_delay=10.0)
    data = await policy.run(lambda: client.get_json("/search.json?q=dune"))
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from storylines.core import constants
from storylines.core.errors import (
    StorylinesError,
    UpstreamFatalError,
    UpstreamTransientError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT = "rate_limit"
SERVER_ERROR = "server_error"

_RATE_LIMIT_PATTERN = re.compile(r"\b429\b|resource_exhausted|rate limit")
_SERVER_ERROR_PATTERN = re.compile(r"\b5\d\d\b|internal")


def status_code_of(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status extraction from SDK and httpx exceptions."""
    for attr in ("status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_failure(error: BaseException) -> Optional[str]:
    """Return RATE_LIMIT, SERVER_ERROR, or None for a non-retryable failure."""
    if isinstance(error, UpstreamTransientError):
        return RATE_LIMIT if error.status_code == 429 else SERVER_ERROR
    if isinstance(error, StorylinesError):
        return None

    status = status_code_of(error)
    if status == 429:
        return RATE_LIMIT
    if status is not None and 500 <= status < 600:
        return SERVER_ERROR

    text = f"{type(error).__name__} {error}".lower()
    if _RATE_LIMIT_PATTERN.search(text):
        return RATE_LIMIT
    if _SERVER_ERROR_PATTERN.search(text):
        return SERVER_ERROR
    return None


def is_transient(error: BaseException) -> bool:
    return classify_failure(error) is not None


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    *,
    service: str = "upstream",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """Await ``operation()`` retrying transient failures with doubling delays.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        retries: Total attempts (default: RETRY_ATTEMPTS)
        initial_delay: Seconds before the second attempt (default: RETRY_INITIAL_DELAY)
        max_delay: Ceiling for the doubled delay (default: RETRY_MAX_DELAY)
        service: Name used in errors and log lines
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Whatever ``operation()`` returns

    Raises:
        UpstreamTransientError: A transient failure persisted through every attempt
        UpstreamFatalError: A foreign non-transient failure
        StorylinesError: Our own non-transient errors pass through unchanged
    """
    retries = constants.RETRY_ATTEMPTS if retries is None else retries
    delay = constants.RETRY_INITIAL_DELAY if initial_delay is None else initial_delay
    max_delay = constants.RETRY_MAX_DELAY if max_delay is None else max_delay
    retries = max(1, retries)

    for attempt in range(1, retries + 1):
        try:
            return await operation()
        except Exception as error:
            kind = classify_failure(error)
            if kind is None:
                if isinstance(error, StorylinesError):
                    raise
                raise UpstreamFatalError(
                    f"{service} call failed: {error}",
                    service=service,
                    status_code=status_code_of(error),
                    original_error=error,
                ) from error

            if attempt >= retries:
                if isinstance(error, UpstreamTransientError):
                    raise
                raise UpstreamTransientError(
                    f"{service} call failed after {retries} attempts: {error}",
                    service=service,
                    status_code=status_code_of(error),
                    original_error=error,
                ) from error

            if kind == RATE_LIMIT:
                logger.warning("%s rate limit hit. Retrying in %.1fs...", service, delay)
            else:
                logger.warning(
                    "%s server error (%s). Retrying in %.1fs...",
                    service, status_code_of(error) or "5xx", delay,
                )
            await sleep(delay)
            delay = min(delay * 2, max_delay)


@dataclass
class RetryPolicy:
    """Reusable backoff configuration shared by the upstream clients."""

    retries: int = field(default_factory=lambda: constants.RETRY_ATTEMPTS)
    initial_delay: float = field(default_factory=lambda: constants.RETRY_INITIAL_DELAY)
    max_delay: float = field(default_factory=lambda: constants.RETRY_MAX_DELAY)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_settings(cls, retry_settings) -> "RetryPolicy":
        return cls(
            retries=retry_settings.attempts,
            initial_delay=retry_settings.initial_delay,
            max_delay=retry_settings.max_delay,
        )

    async def run(self, operation: Callable[[], Awaitable[Any]], service: str = "upstream") -> Any:
        return await retry_with_backoff(
            operation,
            retries=self.retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            service=service,
            sleep=self.sleep,
        )
