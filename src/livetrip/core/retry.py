"""Backoff for trip store writes.

Lifecycle writes go to the hosting application's store, which may surface
its own connection errors. Those are retried a few times before the error
reaches the caller's error mapping unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import TransientError

T = TypeVar("T")
logger = logging.getLogger(__name__)

STORE_RETRYABLE: tuple[type[Exception], ...] = (TransientError, ConnectionError, TimeoutError)


@dataclass(frozen=True)
class Backoff:
    attempts: int = 3
    initial_delay_s: float = 0.2
    factor: float = 2.0
    ceiling_s: float = 5.0

    def delays(self) -> Iterator[float]:
        """Pauses between attempts; one fewer than ``attempts``."""
        delay = self.initial_delay_s
        for _ in range(self.attempts - 1):
            yield min(delay, self.ceiling_s)
            delay *= self.factor


async def with_retry(
    write: Callable[[], Awaitable[T]],
    backoff: Backoff | None = None,
    description: str = "store write",
    retry_on: tuple[type[Exception], ...] = STORE_RETRYABLE,
) -> T:
    """Run ``write``, pausing and trying again while it fails with ``retry_on``."""
    backoff = backoff or Backoff()

    for attempt, delay in enumerate(backoff.delays(), start=1):
        try:
            return await write()
        except retry_on as e:
            logger.warning(
                f"{description} failed ({attempt}/{backoff.attempts}), "
                f"next try in {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)

    try:
        return await write()
    except retry_on as e:
        logger.error(f"{description} gave up after {backoff.attempts} attempts: {e}")
        raise
