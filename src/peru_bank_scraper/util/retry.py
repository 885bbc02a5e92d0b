from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from ..errors import ScraperError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_transient(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_s: float = 2.0,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Call `fn`, retrying only when it raises a retryable `ScraperError` (bank unavailable or timeout).

    Invalid credentials and bot detection are never retried: repeating them looks like abuse to the bank.
    """
    sleep = sleep or time.sleep
    attempts = max(1, int(attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ScraperError as e:
            if not e.retryable or attempt >= attempts:
                raise
            delay = float(backoff_s) * (2 ** (attempt - 1))
            logger.warning(
                "%s (attempt %s/%s); retrying in %.1fs.",
                e,
                attempt,
                attempts,
                delay,
            )
            sleep(delay)

    raise AssertionError("unreachable")
