"""Retry with exponential backoff for provider calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .cancellation import CancellationToken
from .config import Settings
from .errors import (
    EmptyResponseError,
    MalformedResponseError,
    ProviderHTTPError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """`max_retries` retries after the first attempt, `base_delay * 2**n` apart."""
    max_retries: int = MAX_RETRIES
    base_delay: float = BASE_DELAY

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_retries=settings.max_retries, base_delay=settings.retry_delay)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def backoff_delay(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """Delay before retry number `attempt` (0-based): base * 2^attempt."""
    return base_delay * (2 ** attempt)


def is_retryable(error: BaseException) -> bool:
    """
    Check if an error may succeed on another attempt.

    Rate limits, server errors, transport failures, and 2xx responses that
    were empty or undecodable are retried. Everything else is final.
    """
    if isinstance(error, ProviderHTTPError):
        return error.is_transient
    if isinstance(error, (httpx.TransportError, EmptyResponseError, MalformedResponseError)):
        return True
    return False


async def _cancellable_sleep(delay: float, cancel: Optional[CancellationToken], sleep: Sleep) -> None:
    if cancel is None:
        await sleep(delay)
    else:
        await cancel.guard(sleep(delay))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    cancel: Optional[CancellationToken] = None,
    label: str = "provider call",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds or fails with a final error.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry count and base delay
        cancel: Checked before every attempt and raced against backoff sleeps
        label: Name used in log messages
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The operation's result

    Raises:
        The first non-retryable error, or the last error once attempts run out
    """
    policy = policy or RetryPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        if cancel is not None:
            cancel.raise_if_cancelled()

        try:
            return await operation()
        except Exception as e:
            last_error = e

            if not is_retryable(e):
                raise

            if attempt < policy.max_retries:
                delay = backoff_delay(attempt, policy.base_delay)
                logger.warning(
                    f"{label}: Retryable error (attempt {attempt + 1}/{policy.max_attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                await _cancellable_sleep(delay, cancel, sleep)
            else:
                logger.error(f"{label}: All {policy.max_attempts} attempts failed")

    raise last_error
