from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from .errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retries(fn: Callable[[], T], attempts: int = 3, backoff: float = 0.05) -> T:
    """
    Run an idempotent read, retrying on ``StoreError``.

    Sleeps ``backoff * 2**n`` between attempts and re-raises the last error.
    Never wrap writes with this: order placement must be re-requested
    explicitly by the caller.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts):
        try:
            return fn()
        except StoreError:
            logger.warning("Store read failed (attempt %d/%d), retrying", attempt, attempts)
            time.sleep(backoff * (2 ** (attempt - 1)))
    return fn()
