"""Retry-with-backoff combinator for backend operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from mdksys.errors import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    UNIQUE_VIOLATION,
    BackendError,
    TransactionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE_CODES = frozenset({UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION, CHECK_VIOLATION})
_TERMINAL_MARKERS = ("Invalid", "validation", "Validation", "authentication", "Authentication")


def is_retryable(exc: BaseException) -> bool:
    """Whether *exc* looks transient enough to try again."""
    if isinstance(exc, (ValidationError, TransactionError)):
        return False
    if isinstance(exc, BackendError) and exc.code in NON_RETRYABLE_CODES:
        return False
    message = str(exc)
    return not any(marker in message for marker in _TERMINAL_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Run an async operation up to *max_attempts* times.

    The wait before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``
    seconds. :class:`ValidationError` passes through untouched; any other
    failure that is not retryable, or that is still failing on the last
    attempt, surfaces as :class:`TransactionError`.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    is_retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[object]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return self.base_delay * 2 ** (attempt - 1)

    async def run(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn()
            except ValidationError:
                raise
            except Exception as exc:
                if not self.is_retryable(exc):
                    logger.error("%s failed with a terminal error: %s", operation, exc)
                    if isinstance(exc, TransactionError):
                        raise
                    raise TransactionError(
                        f"{operation} failed: {exc}", operation, exc,
                    ) from exc
                if attempt == self.max_attempts:
                    logger.error(
                        "%s failed after %d attempts: %s", operation, attempt, exc,
                    )
                    raise TransactionError(
                        f"Operation failed after {self.max_attempts} attempts",
                        operation,
                        exc,
                    ) from exc
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed: %s. Retrying in %.1fs",
                    operation, attempt, self.max_attempts, exc, delay,
                )
                await self.sleep(delay)
        raise AssertionError("unreachable")
