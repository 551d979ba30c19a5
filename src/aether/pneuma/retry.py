"""Retry policy with exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from .errors import RequestTimeoutError, RpcRequestError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# -1: unknown, -32005: limit exceeded, -32603: internal error
DEFAULT_RETRYABLE_CODES = frozenset({-1, -32005, -32603})


@dataclass(frozen=True)
class RetryPolicy:
    retry_count: int = 3
    base_delay: float = 0.15
    max_delay: float = 5.0
    jitter: float = 0.2
    retryable_codes: frozenset[int] = field(default=DEFAULT_RETRYABLE_CODES)
    retry_on_timeout: bool = False

    def __post_init__(self) -> None:
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be within [0, 1]")

    @classmethod
    def none(cls) -> "RetryPolicy":
        return cls(retry_count=0)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, TransportError):
            return exc.retryable
        if isinstance(exc, RpcRequestError):
            return exc.code in self.retryable_codes
        if isinstance(exc, RequestTimeoutError):
            return self.retry_on_timeout
        return False

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        base = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter:
            base *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return base


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "request",
) -> T:
    """Run ``operation`` with up to ``policy.retry_count`` retries.

    Non-retryable errors propagate immediately. When retries run out on a
    transport fault, a terminal ``TransportError`` wrapping the last fault is
    raised; other errors are re-raised as-is.
    """
    attempts = policy.retry_count + 1
    for attempt in range(attempts):
        try:
            return await operation()
        except (TransportError, RpcRequestError, RequestTimeoutError) as exc:
            if not policy.is_retryable(exc):
                raise
            if attempt == attempts - 1:
                if isinstance(exc, TransportError):
                    raise TransportError(
                        f"{description} failed after {attempts} attempts: {exc}",
                        retryable=False,
                        attempts=attempts,
                    ) from exc
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                description, attempt + 1, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


__all__ = ["DEFAULT_RETRYABLE_CODES", "RetryPolicy", "with_retry"]
