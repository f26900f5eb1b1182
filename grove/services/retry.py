"""
grove.services.retry — Bounded Retry for Transient Write Failures
==================================================================

Write paths (profile reconciliation, stat increments, audit records) may
lose a race against a concurrent writer (:class:`ConflictError`) or hit a
database hiccup (:class:`UpstreamError`).  Those are retried a few times
with exponential backoff + jitter; anything else propagates untouched.
Once attempts are exhausted the caller sees :class:`UpstreamError`.

Each attempt must run in its own transaction so a failed attempt leaves
nothing behind.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from grove.errors import GroveError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_backoff: float = 0.05  # seconds
    max_backoff: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must be non-negative")

    def delay(self, attempt: int) -> float:
        """Sleep before retry number *attempt* (1-based)."""
        backoff = min(self.base_backoff * (2 ** (attempt - 1)), self.max_backoff)
        return backoff + random.uniform(0, backoff * 0.5)


DEFAULT_RETRY_POLICY = RetryPolicy()


def run_with_retries(
    func: Callable[[], T],
    *,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    operation: str = "write",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *func* until it succeeds, retrying retryable :class:`GroveError`."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except GroveError as exc:
            if not exc.retryable:
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s", operation, attempt, exc,
                )
                if isinstance(exc, UpstreamError):
                    raise
                raise UpstreamError(
                    f"{operation} did not complete after {attempt} attempts: {exc}"
                ) from exc
            wait = policy.delay(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s: %s). Retrying in %.2fs…",
                operation, attempt, policy.max_attempts,
                type(exc).__name__, exc, wait,
            )
            sleep(wait)
