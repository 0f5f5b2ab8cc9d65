"""
Retry with exponential backoff for transient failures.

Usage:
    from cbtc_sdk.retry import RetryConfig, retry_async

    config = RetryConfig(max_retries=5, base_delay=0.5)
    offset = await retry_async(ledger.current_offset, config=config)

A retried ledger submission must reuse its command id; callers build the
request once and retry the send.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, ParamSpec, Type, TypeVar

from .constants import Defaults
from .errors import CBTCError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (0 means no retries)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Maximum jitter factor (0.0-1.0) applied to delays
        retryable_exceptions: Exception types retried regardless of their ``retryable`` flag
    """

    max_retries: int = Defaults.MAX_RETRIES
    base_delay: float = Defaults.RETRY_BASE_DELAY
    max_delay: float = Defaults.RETRY_MAX_DELAY
    exponential_base: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: tuple[Type[BaseException], ...] = ()

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay = delay + random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay)

    def should_retry(self, exception: BaseException) -> bool:
        if isinstance(exception, self.retryable_exceptions):
            return True
        return isinstance(exception, CBTCError) and exception.retryable


NO_RETRY = RetryConfig(max_retries=0)


async def retry_async(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    config: Optional[RetryConfig] = None,
    **kwargs: P.kwargs,
) -> T:
    """Execute an async function, retrying transient failures.

    The last exception is re-raised unchanged once attempts are exhausted so
    callers keep the original error type.
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if attempt >= config.max_retries or not config.should_retry(e):
                raise

            delay = config.calculate_delay(attempt)
            logger.warning(
                "Retry %d/%d for %s after %s: %s. Waiting %.2fs",
                attempt + 1,
                config.max_retries,
                getattr(func, "__name__", repr(func)),
                type(e).__name__,
                e,
                delay,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected error in retry loop")
