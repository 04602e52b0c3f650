"""
Retry and sequence utilities for backup operations.

This module provides retry functionality with exponential backoff built on
tenacity, and helpers to order change feed sequence tokens.
"""

import re
from datetime import datetime, timezone
from functools import wraps
from typing import Callable, Optional, Tuple

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .audit.logger import BackupLogger
from .config.models import RetryConfig, SequenceToken
from .exceptions import StoreRequestError

_SEQUENCE_PREFIX = re.compile(r"^\s*(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sequence_key(seq: Optional[SequenceToken]) -> Tuple[int, str]:
    """
    Sort key for a change feed sequence token.

    Tokens are either plain integers or strings whose numeric prefix orders
    them ("12-g1AAAA..."). A missing token sorts before everything.
    """
    if seq is None:
        return (-1, "")
    if isinstance(seq, int):
        return (seq, "")
    text = str(seq)
    match = _SEQUENCE_PREFIX.match(text)
    if match:
        return (int(match.group(1)), text)
    return (0, text)


def sequence_greater(candidate: Optional[SequenceToken], current: Optional[SequenceToken]) -> bool:
    """True when candidate is strictly later than current."""
    if candidate is None:
        return False
    return sequence_key(candidate)[0] > sequence_key(current)[0]


def is_retryable_error(exception: BaseException) -> bool:
    """Transport errors and transient store responses are worth retrying."""
    if isinstance(exception, StoreRequestError):
        return exception.retryable
    return isinstance(exception, (requests.ConnectionError, requests.Timeout))


def retry_with_logging(
    retry_config: RetryConfig,
    logger: Optional[BackupLogger] = None,
    retry_on: Callable[[BaseException], bool] = is_retryable_error,
):
    """
    Decorator for retrying operations with logging.

    Args:
        retry_config: RetryConfig object with retry settings
        logger: Optional logger for logging attempts
        retry_on: Predicate selecting the exceptions worth another attempt

    Returns:
        Decorated function returning (result, last_exception, attempt, max_attempts)
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_attempts = retry_config.max_attempts

            def log_retry(retry_state):
                if logger:
                    logger.warning(
                        f"{func.__name__} failed on attempt "
                        f"{retry_state.attempt_number}/{max_attempts}: "
                        f"{retry_state.outcome.exception()}"
                    )

            retrying = Retrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(
                    multiplier=retry_config.retry_delay_seconds,
                    min=retry_config.retry_delay_seconds,
                ),
                retry=retry_if_exception(retry_on),
                before_sleep=log_retry,
                reraise=True,
            )

            attempt = 0
            try:
                for attempt_state in retrying:
                    with attempt_state:
                        attempt = attempt_state.retry_state.attempt_number
                        result = func(*args, **kwargs)
            except RetryError as e:
                return False, e.last_attempt.exception(), attempt, max_attempts
            except Exception as e:
                if logger:
                    logger.error(
                        f"{func.__name__} failed after {attempt}/{max_attempts} attempts: {e}"
                    )
                return False, e, attempt, max_attempts

            if logger and attempt > 1:
                logger.info(
                    f"{func.__name__} succeeded on attempt {attempt}/{max_attempts}"
                )
            return result, None, attempt, max_attempts

        return wrapper

    return decorator
