"""Retry decorator with exponential backoff for transient HTTP failures."""
from __future__ import annotations

import functools
import random
import time
from typing import Any, Callable, Tuple, Type

import requests

from jobfeed.log import get_logger

log = get_logger(__name__)

RETRYABLE_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    """Transport errors and throttling/5xx responses are worth another attempt."""
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        return response is not None and response.status_code in RETRYABLE_STATUS
    return isinstance(exc, (requests.RequestException, OSError))


def backoff_delay(
    attempt: int,
    base_delay: float,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    jitter: bool = True,
) -> float:
    """Seconds to wait after failed *attempt* (1-based), capped at *max_delay*."""
    delay = min(base_delay * backoff_factor ** (attempt - 1), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (requests.RequestException, OSError),
    should_retry: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """Decorator: retries the wrapped function with exponential backoff.

    Only exceptions that are instances of *retryable* and pass
    *should_retry* trigger another attempt; anything else propagates
    immediately so a 401 or a malformed payload fails fast.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if not should_retry(exc):
                        raise
                    if attempt >= max_attempts:
                        log.error("%s gave up after %d attempts: %s", fn.__qualname__, attempt, exc)
                        raise
                    delay = backoff_delay(attempt, base_delay, backoff_factor, max_delay, jitter)
                    log.warning(
                        "%s attempt %d/%d failed (%s) — retrying in %.1fs",
                        fn.__qualname__, attempt, max_attempts, exc, delay,
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
