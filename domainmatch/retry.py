"""
Retrying a match whose home-page fetch failed.

The matcher itself never retries: a failed fetch is a failed match.
Callers that want to ride out a flaky home page (the CLI, for one) go
through retry_fetch. Only FetchError is retried; cancellation, bad
configuration and unparseable HTML propagate on the first attempt, and
the last FetchError is re-raised unchanged once retries run out.
"""

import time
from typing import Callable, Optional, TypeVar

from .errors import FetchError

T = TypeVar("T")


def retry_fetch(
    call: Callable[[], T],
    retries: int = 0,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Optional[Callable[[int, FetchError, float], None]] = None,
) -> T:
    """
    Run ``call``, retrying it up to ``retries`` times when it raises FetchError.

    Args:
        call: Zero-argument callable, usually a bound Matcher.evaluate
        retries: Extra attempts after the first (0 = no retries)
        base_delay: Delay before the first retry, doubled after each one
        max_delay: Upper bound on any single delay
        on_retry: Optional callback(attempt, error, delay) before each sleep
    """
    if retries < 0:
        raise ValueError(f"retries must be >= 0, got {retries}")

    delay = base_delay
    for attempt in range(1, retries + 2):
        try:
            return call()
        except FetchError as e:
            if attempt > retries:
                raise
            current_delay = min(delay, max_delay)
            if on_retry:
                on_retry(attempt, e, current_delay)
            time.sleep(current_delay)
            delay *= 2
    # unreachable: the loop either returns or raises
    raise AssertionError("retry_fetch exhausted without a result")
