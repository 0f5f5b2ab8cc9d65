"""
Polling for state changed by the attestor.

Usage:
    task = start_polling(fetch_request, lambda r: r is not None and r.is_completed,
                         interval=30, timeout=3600)
    request = await task        # or task.cancel()

Each attempt completes before the next one starts. Timing out or cancelling
stops local observation only; the ledger and attestor keep working.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .constants import Defaults
from .errors import PollingTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    interval: float = Defaults.POLL_INTERVAL_SECONDS,
    timeout: Optional[float] = None,
    description: str = "condition",
) -> T:
    """Call ``fetch`` until ``predicate`` accepts its result.

    Without ``timeout`` there is no bound on the number of attempts.

    Raises:
        PollingTimeoutError: ``timeout`` seconds elapsed without success.
    """
    loop = asyncio.get_running_loop()
    stop_at = loop.time() + timeout if timeout is not None else None
    attempts = 0

    while True:
        attempts += 1
        value = await fetch()
        if predicate(value):
            logger.debug("%s satisfied after %d attempts", description, attempts)
            return value

        delay = interval
        if stop_at is not None:
            remaining = stop_at - loop.time()
            if remaining <= 0:
                raise PollingTimeoutError(
                    f"Gave up waiting for {description} after {attempts} attempts",
                    attempts=attempts,
                    details={"timeout_seconds": timeout},
                )
            delay = min(interval, remaining)

        logger.debug("Waiting for %s (attempt %d), next poll in %.1fs", description, attempts, delay)
        await asyncio.sleep(delay)


def start_polling(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    interval: float = Defaults.POLL_INTERVAL_SECONDS,
    timeout: Optional[float] = None,
    description: str = "condition",
) -> "asyncio.Task[T]":
    """Run ``poll_until`` as a task the caller can await or cancel."""
    return asyncio.create_task(
        poll_until(fetch, predicate, interval=interval, timeout=timeout, description=description),
        name=f"poll:{description}",
    )
