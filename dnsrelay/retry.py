"""Retrying of listener binding and classification of pipe errors."""

from __future__ import annotations

import errno
import logging
import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def bind_with_retry(bind: Callable[[], T], retries: int = 0, interval: float = 0.0) -> T:
    """Call bind until it succeeds or the retries are used up.

    Returns the result of the first successful call.  If every attempt fails,
    the error of the first attempt is raised.
    """
    try:
        return bind()
    except Exception as first_err:
        logger.warning("binding: attempt 1: %s", first_err)
        for attempt in range(1, retries + 1):
            time.sleep(interval)
            try:
                return bind()
            except Exception as retry_err:
                logger.warning("binding: attempt %d: %s", attempt + 1, retry_err)
        raise first_err


def is_epipe(err: BaseException | None) -> bool:
    """Report whether err or any error it was raised from is EPIPE."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, BrokenPipeError):
            return True
        if isinstance(err, OSError) and err.errno == errno.EPIPE:
            return True
        err = err.__cause__ or err.__context__
    return False