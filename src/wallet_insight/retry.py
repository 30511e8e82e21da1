"""Bounded exponential-backoff retry policy for I/O-bound calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 0.5
DEFAULT_MAX_DELAY_SECONDS = 8.0


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters shared by every I/O call site.

    Attempt ``n`` (0-based) that fails with one of ``retry_on`` waits
    ``min(base_delay * multiplier**n, max_delay)`` before the next attempt.
    Exceptions outside ``retry_on`` propagate immediately.

    Example:
        ```python
        policy = RetryPolicy(max_attempts=3, retry_on=(ChainDataUnavailableError,))
        records = await policy.run(source.fetch, wallet, None)
        ```
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    multiplier: float = 2.0
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS
    retry_on: tuple[type[Exception], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be >= 0")

    def delays(self) -> Iterator[float]:
        """Yield the sleep before each retry (``max_attempts - 1`` values)."""
        for attempt in range(self.max_attempts - 1):
            yield min(self.base_delay * (self.multiplier**attempt), self.max_delay)

    async def run(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Await ``func`` until it succeeds or attempts run out.

        Raises:
            RetryError: If every attempt failed with a retryable exception.
        """
        name = getattr(func, "__qualname__", repr(func))
        delays = list(self.delays())
        last_exception: Exception | None = None

        for attempt in range(self.max_attempts):
            try:
                return await func(*args, **kwargs)
            except self.retry_on as e:
                last_exception = e
                if attempt == self.max_attempts - 1:
                    break
                delay = delays[attempt]
                logger.warning(
                    "Attempt %d/%d of %s failed: %s. Retrying in %.2f seconds...",
                    attempt + 1,
                    self.max_attempts,
                    name,
                    str(e) or type(e).__name__,
                    delay,
                )
                await asyncio.sleep(delay)

        raise RetryError(
            f"All {self.max_attempts} attempts failed for {name}",
            last_exception=last_exception,
        )
