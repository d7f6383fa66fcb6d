"""Capped exponential backoff with jitter for transient failures."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from pointboard.error_classifier import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Defaults: 3 attempts, 100ms base delay, 5s cap before jitter,
# jitter factor drawn uniformly from [0.5, 1.5).
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 0.1
DEFAULT_MAX_DELAY = 5.0
DEFAULT_JITTER = (0.5, 1.5)


class RetryExecutor:
    """Run an async operation, retrying it while its failures are transient.

    The executor never retries an error the classifier does not recognise as
    transient, and the last error is re-raised unchanged once attempts run
    out, so callers can still branch on its kind.

    Parameters
    ----------
    max_attempts:
        Default total number of attempts (first try included).
    initial_delay:
        Default base delay in seconds before the first retry.
    max_delay:
        Upper bound in seconds on the exponential delay, applied before jitter.
    jitter:
        ``(low, high)`` range of the multiplicative jitter factor.
    sleep:
        Coroutine used to wait between attempts (``asyncio.sleep``).
    rng:
        Random source for jitter.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: tuple[float, float] = DEFAULT_JITTER,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts!r}")
        if jitter[0] < 0 or jitter[0] > jitter[1]:
            raise ValueError(f"Invalid jitter range: {jitter!r}")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt_index: int, initial_delay: float | None = None) -> float:
        """Return the jittered delay (seconds) to wait after attempt *attempt_index*.

        *attempt_index* is zero-based: the wait after the first failed
        attempt uses index 0.
        """
        base = self.initial_delay if initial_delay is None else initial_delay
        # Clamp the exponent so huge attempt indices cannot overflow.
        exponential = base * (2 ** min(attempt_index, 62))
        capped = min(self.max_delay, exponential)
        low, high = self.jitter
        return capped * self._rng.uniform(low, high)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        initial_delay: float | None = None,
    ) -> T:
        """Await ``operation()`` until it succeeds or fails permanently."""
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {attempts!r}")

        for attempt in range(attempts):
            try:
                return await operation()
            except Exception as exc:
                final = attempt == attempts - 1
                if final or not is_retryable(exc):
                    raise
                delay = self.compute_delay(attempt, initial_delay)
                logger.warning(
                    "Attempt %d/%d failed (%s: %s), retrying in %.0fms",
                    attempt + 1, attempts, type(exc).__name__, exc, delay * 1000,
                )
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises.
        raise RuntimeError("retry loop exited without a result")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
) -> T:
    """Shortcut for ``RetryExecutor().run(...)`` with default settings."""
    return await RetryExecutor(max_attempts, initial_delay).run(operation)
