"""Deadline-bounded polling shared by readiness waits and rotation jobs."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from .errors import TransportError, WaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    *,
    timeout: Optional[float],
    interval: float = 1.0,
    backoff: float = 1.0,
    max_interval: float = 10.0,
    max_consecutive_errors: int = 3,
    describe: Callable[[Optional[T]], Optional[str]] = lambda _: None,
    description: str = "resource",
) -> T:
    """
    Call fetch() until is_done(result) holds or the deadline passes.

    fetch may raise to signal a terminal condition; that error propagates
    at once. Transient TransportErrors are retried under the same deadline,
    up to max_consecutive_errors in a row, after which the last one is
    re-raised. A deadline that expires on a failed attempt still raises
    WaitTimeoutError. A timeout of None or 0 means a single attempt.

    describe(last_result) supplies the status reported by WaitTimeoutError.
    """
    timeout = timeout or 0.0
    deadline = time.monotonic() + timeout
    delay = interval
    last: Optional[T] = None
    errors = 0

    while True:
        try:
            result = fetch()
        except TransportError as e:
            if not e.transient:
                raise
            errors += 1
            if errors >= max_consecutive_errors:
                raise
            if time.monotonic() >= deadline:
                raise WaitTimeoutError(description, timeout, describe(last)) from e
            logger.warning(f"Transient error while waiting for {description} ({errors}/{max_consecutive_errors}): {e}")
        else:
            errors = 0
            last = result
            if is_done(result):
                return result
            logger.debug(f"Still waiting for {description}: {describe(result)}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError(description, timeout, describe(last))

        time.sleep(min(delay, remaining))
        delay = min(delay * backoff, max_interval)
