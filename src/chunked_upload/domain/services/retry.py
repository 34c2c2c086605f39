"""Retry with optional exponential backoff.

Delays follow ``retry_delay_ms * 2**(attempt - 1)`` with backoff enabled
(1x, 2x, 4x, ...) and stay at ``retry_delay_ms`` without it. The sleep
function is injectable so tests never wait on the wall clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from chunked_upload.domain.exceptions import UploadError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and delay schedule.

    Attributes:
        max_retries: Total attempts, including the first one.
        retry_delay_ms: Base delay between attempts.
        backoff: Double the delay after each failed attempt.
    """

    max_retries: int = 3
    retry_delay_ms: int = 1000
    backoff: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms must be non-negative, got {self.retry_delay_ms}")

    def delay_ms(self, attempt: int) -> int:
        """Delay after the given failed attempt (1-based), in milliseconds."""
        if self.backoff:
            return self.retry_delay_ms * 2 ** (attempt - 1)
        return self.retry_delay_ms

    def delays(self) -> list[int]:
        """Every delay the policy can produce, in milliseconds."""
        return [self.delay_ms(attempt) for attempt in range(1, self.max_retries)]


def is_retryable(error: Exception) -> bool:
    """Engine errors declare whether they are retryable; anything else
    (connection resets, timeouts) is treated as transient."""
    if isinstance(error, UploadError):
        return error.retryable
    return True


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    retryable: Callable[[Exception], bool] = is_retryable,
) -> T:
    """Call ``fn`` until it succeeds or the policy is exhausted.

    Args:
        fn: Operation to attempt.
        policy: Retry budget and delays.
        on_retry: Called as ``on_retry(attempt, error)`` before each wait.
        sleep: Sleep function taking seconds.
        retryable: Decides whether an error may be retried.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error once attempts run out, or the first
            non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as error:
            attempt += 1
            if attempt >= policy.max_retries or not retryable(error):
                raise
            if on_retry is not None:
                on_retry(attempt, error)
            sleep(policy.delay_ms(attempt) / 1000.0)
