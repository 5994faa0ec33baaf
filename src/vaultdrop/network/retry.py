"""Generic retry-with-backoff, shared by every transfer call.

Attempt 0 runs immediately. After a failure the policy's ``retry_on``
predicate decides whether the error is transient; if it is and fewer than
``max_retries`` retries have happened, the caller sleeps
``base_delay * 2 ** (retry - 1)`` seconds (1s, 2s, 4s with the defaults) and
tries again. Nothing is remembered between calls.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_network_error(exc: BaseException) -> bool:
    """
    Timeouts and dropped / reset / refused connections are worth retrying.

    A reset while the body is still streaming surfaces as ChunkedEncodingError.
    TLS failures are ConnectionError subclasses too, but a retry cannot fix them.
    """
    if isinstance(exc, requests.exceptions.SSLError):
        return False
    return isinstance(
        exc,
        (requests.Timeout, requests.ConnectionError, requests.exceptions.ChunkedEncodingError),
    )


@dataclass(frozen=True)
class RetryPolicy:
    """
    ``max_retries`` counts retries after the first attempt, so the default
    makes up to four attempts, sleeping 1s, 2s and 4s in between.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    retry_on: Callable[[BaseException], bool] = field(default=is_transient_network_error)

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        return self.base_delay * (2 ** (retry_number - 1))


class RetriesExhausted(Exception):
    """Raised by :func:`call_with_retry` when a retryable error persists."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """
    Run ``func`` under ``policy``.

    Non-retryable errors propagate untouched on the attempt they happen.
    A retryable error that is still failing after ``policy.max_retries``
    retries is wrapped in :class:`RetriesExhausted`.
    """
    retries = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if not policy.retry_on(exc):
                raise
            attempts = retries + 1
            logger.warning("%s attempt %d failed: %s", label, attempts, type(exc).__name__)
            if retries >= policy.max_retries:
                raise RetriesExhausted(exc, attempts) from exc
            retries += 1
            delay = policy.delay_for(retries)
            logger.info("Retrying %s in %.1fs (retry %d of %d)", label, delay, retries, policy.max_retries)
            sleep(delay)
