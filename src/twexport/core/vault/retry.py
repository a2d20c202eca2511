"""
Backoff for vault requests that fail below the HTTP layer.

Timeouts and dropped or refused connections are retried. Any HTTP
response, whatever its status, is returned to the caller untouched.
"""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy.

    Attempt ``n`` (0-based) waits ``base_delay * multiplier ** n`` seconds,
    spread by up to ``jitter_ratio`` either way when ``jitter`` is on.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2

    def __post_init__(self) -> None:
        problems = []
        if self.max_retries < 0:
            problems.append("max_retries must be >= 0")
        if self.base_delay < 0:
            problems.append("base_delay must be >= 0")
        if self.multiplier < 1.0:
            problems.append("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            problems.append("jitter_ratio must lie in [0, 1]")
        if problems:
            raise ValueError("; ".join(problems))

    def calculate_delay(self, attempt: int) -> float:
        delay = self.base_delay * self.multiplier**attempt
        if self.jitter:
            spread = delay * self.jitter_ratio
            delay += random.uniform(-spread, spread)
        return max(delay, 0.0)


def is_retryable_error(exception: BaseException) -> bool:
    return isinstance(exception, TRANSIENT_ERRORS)


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Wrap a coroutine function so transient transport errors are retried.

        >>> @with_retry(RetryConfig(max_retries=2))
        ... async def get(client: httpx.AsyncClient, url: str) -> httpx.Response:
        ...     return await client.get(url)
    """
    policy = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_error(e):
                        raise
                    if attempt >= policy.max_retries:
                        logger.warning("%s: giving up after %d retries: %s", name, attempt, e)
                        raise
                    delay = policy.calculate_delay(attempt)
                    attempt += 1
                    logger.info(
                        "%s: retry %d/%d in %.2fs (%s)", name, attempt, policy.max_retries, delay, e
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "TRANSIENT_ERRORS",
    "is_retryable_error",
    "with_retry",
]
