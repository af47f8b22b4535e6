"""
retry
=====

Bounded retry with exponential backoff for remote catalog calls.

The collector wraps every remote operation explicitly, either with
:func:`call_with_retry` or the :func:`retry` decorator. The wrapped operation
must be safe to repeat: each attempt starts from scratch.

Policy: run the operation; on failure, if retries remain, sleep
``base_delay * 2 ** attempt`` seconds (``attempt`` counts from 0) and try
again. Once every attempt has failed, raise :class:`RetryError` naming the
attempt count, chained to the last underlying error.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY = 0.5  # seconds


class RetryError(Exception):
    """Raised when an operation failed on every attempt.

    The last underlying error is available as ``__cause__`` (and ``cause``).
    """

    def __init__(self, message: str, attempts: int, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


def _check(retries: int, base_delay: float) -> None:
    if retries < 0:
        raise ValueError(f"retries must be >= 0, got {retries}")
    if base_delay < 0:
        raise ValueError(f"base_delay must be >= 0, got {base_delay}")


def call_with_retry(
    op: Callable[[], T],
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *op* until it succeeds, at most ``retries + 1`` times.

    Parameters
    ----------
    op:
        Zero-argument callable to invoke.
    retries:
        Additional attempts after the first one (>= 0).
    base_delay:
        Delay in seconds before the first retry; doubled for each further
        retry (>= 0).
    retry_on:
        Exception types that trigger a retry. Anything else propagates
        immediately.
    sleep:
        Sleep function (injectable for tests).

    Returns
    -------
    T
        The first successful result.

    Raises
    ------
    ValueError
        If *retries* or *base_delay* is negative.
    RetryError
        If every attempt failed.
    """
    _check(retries, base_delay)
    attempts = retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        try:
            return op()
        except retry_on as exc:
            last_error = exc
            if attempt >= retries:
                break
            delay = base_delay * 2 ** attempt
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.2fs", attempt + 1, attempts, exc, delay
            )
            if delay > 0:
                sleep(delay)

    noun = "attempt" if attempts == 1 else "attempts"
    raise RetryError(
        f"Operation failed after {attempts} {noun}: {last_error}", attempts, last_error
    ) from last_error


def retry(
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of :func:`call_with_retry`.

    >>> @retry(retries=2, base_delay=0)
    ... def fetch():
    ...     return 42
    >>> fetch()
    42
    """
    _check(retries, base_delay)

    def decorate(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return call_with_retry(
                lambda: func(*args, **kwargs),
                retries=retries,
                base_delay=base_delay,
                retry_on=retry_on,
                sleep=sleep,
            )

        return wrapper

    return decorate
