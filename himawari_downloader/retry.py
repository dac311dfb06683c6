"""
Retry policy for outbound requests.

Only transport timeouts are retried. Every other error propagates on the
first attempt. The default policy retries timeouts forever with no delay,
which suits an unattended batch job against a service with no SLA;
``RetryPolicy.bounded`` caps attempts and adds a linear backoff.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

import requests

from .errors import RetryCancelledError, TransientNetworkError

logger = logging.getLogger(__name__)


def is_timeout(exc: BaseException) -> bool:
    """Return True for connect and read timeouts."""
    return isinstance(exc, requests.exceptions.Timeout)


class RetryPolicy:
    """
    Runs a callable until it succeeds or fails with a non-retryable error.

    Args:
        is_retryable: Predicate deciding whether an exception is retried
        max_attempts: Total attempts per call, None for no limit
        backoff: Seconds to sleep, multiplied by the attempt number
        sleep: Sleep function (overridable for tests)
    """

    def __init__(self, is_retryable: Callable[[BaseException], bool] = is_timeout,
                 max_attempts: Optional[int] = None, backoff: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if backoff < 0:
            raise ValueError(f"backoff must not be negative, got {backoff}")
        self.is_retryable = is_retryable
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def unbounded(cls, backoff: float = 0.0) -> "RetryPolicy":
        """Retry timeouts forever, immediately unless a backoff is given."""
        return cls(backoff=backoff)

    @classmethod
    def bounded(cls, max_attempts: int = 5, backoff: float = 1.0) -> "RetryPolicy":
        """Retry timeouts up to max_attempts times with linear backoff."""
        return cls(max_attempts=max_attempts, backoff=backoff)

    @property
    def is_unbounded(self) -> bool:
        return self.max_attempts is None

    def call(self, fn: Callable[..., Any], *args,
             stop_event: Optional[threading.Event] = None, **kwargs) -> Any:
        """
        Call fn(*args, **kwargs), retrying retryable failures.

        Args:
            fn: Callable to run
            stop_event: Checked before every attempt; once set, the loop
                stops instead of retrying again

        Returns:
            Whatever fn returns on its first successful attempt

        Raises:
            TransientNetworkError: If a bounded policy exhausts its attempts
            RetryCancelledError: If stop_event is set before fn succeeds
        """
        attempt = 0
        last_error: Optional[BaseException] = None
        while True:
            if stop_event is not None and stop_event.is_set():
                raise RetryCancelledError(
                    f"Stopped after {attempt} attempts"
                ) from last_error
            attempt += 1
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                last_error = e
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise TransientNetworkError(
                        f"Giving up after {attempt} attempts: {e}", attempts=attempt
                    ) from e
                logger.debug("Attempt %d timed out (%s), retrying", attempt, e)
                if self.backoff:
                    self._sleep(self.backoff * attempt)

    def __repr__(self) -> str:
        return (f"RetryPolicy(max_attempts={self.max_attempts!r}, "
                f"backoff={self.backoff!r})")
