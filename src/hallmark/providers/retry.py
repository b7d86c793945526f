"""Bounded exponential backoff for backend invocations."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from hallmark.config import RetryConfig
from hallmark.providers.base import (
    BackendError,
    ExecutionFailedError,
    NonZeroExitError,
    ProviderTimeoutError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_PATTERN = re.compile(
    r"rate[ _-]?limit|too many requests|\b429\b|overloaded|"
    r"temporar(?:y|ily)|unavailable|\b50[0234]\b|try again later|"
    r"connection (?:reset|refused)|timed out",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for backend invocations.

    ``max_retries`` counts attempts after the first one.
    """

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_seconds: float = 0.0

    @classmethod
    def from_config(cls, retry: RetryConfig) -> RetryPolicy:
        max_retries = max(0, min(10, int(retry.max_retries)))
        base_delay = max(0.0, float(retry.base_delay_seconds))
        max_delay = max(base_delay, float(retry.max_delay_seconds))
        jitter = max(0.0, float(retry.jitter_seconds))
        return cls(
            max_retries=max_retries,
            base_delay_seconds=base_delay,
            max_delay_seconds=max_delay,
            jitter_seconds=jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed ``attempt`` (1-based)."""
        return min(
            self.max_delay_seconds,
            self.base_delay_seconds * (2 ** max(0, attempt - 1)),
        )

    def sleep_for(self, attempt: int) -> float:
        """Backoff plus jitter, still capped at ``max_delay_seconds``."""
        delay = self.delay_for(attempt)
        if self.jitter_seconds > 0:
            delay += random.uniform(0.0, self.jitter_seconds)
        return min(self.max_delay_seconds, delay)


def is_transient_error(error: BaseException) -> bool:
    """Return True when retrying the same backend could plausibly succeed.

    Timeouts always qualify. Failed exits and CLI-reported errors qualify
    only when their text looks like throttling or a temporary outage. A
    missing executable, a spawn failure, or malformed output never does.
    """
    if isinstance(error, ProviderTimeoutError):
        return True
    if isinstance(error, NonZeroExitError):
        return bool(_TRANSIENT_PATTERN.search(error.stderr or ""))
    if isinstance(error, ExecutionFailedError):
        return bool(_TRANSIENT_PATTERN.search(error.message or ""))
    return False


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_failure: Callable[[int, int, BackendError, bool], None] | None = None,
) -> T:
    """Invoke ``attempt_fn`` until it succeeds, fails permanently, or runs out.

    Non-transient errors are raised unchanged after the first failure.
    Transient errors are retried; when no attempts remain the last one is
    wrapped in RetriesExhaustedError.
    """
    decider = should_retry or is_transient_error
    attempts = deque(range(1, policy.max_attempts + 1))

    while attempts:
        attempt = attempts.popleft()
        try:
            return await attempt_fn()
        except BackendError as error:
            retryable = decider(error)
            if on_failure is not None:
                on_failure(attempt, policy.max_attempts, error, retryable)
            if not retryable:
                raise
            if not attempts:
                raise RetriesExhaustedError(error.provider, error, attempt) from error
            delay = policy.sleep_for(attempt)
            logger.debug(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                error.provider, attempt, policy.max_attempts, error.summary(), delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)

    raise RuntimeError("retry queue exhausted without attempts")
