"""Retry with exponential backoff for calendar API calls."""
import logging
import time
from typing import Any, Callable

import requests

from gateway.errors import (
    GatewayError,
    NotFoundError,
    PermissionDeniedError,
    TokenInvalidatedError,
)

logger = logging.getLogger(__name__)

NON_RETRYABLE_ERRORS = (PermissionDeniedError, NotFoundError, TokenInvalidatedError)


def is_retryable(error: Exception) -> bool:
    """Return True if the error is transient and the call may be retried."""
    if isinstance(error, NON_RETRYABLE_ERRORS):
        return False
    if isinstance(error, GatewayError):
        return error.retryable
    return isinstance(error, requests.RequestException)


def call_with_retry(
    func: Callable[..., Any],
    *args,
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    **kwargs
) -> Any:
    """
    Call a function, retrying transient failures with exponential backoff.

    The delay before attempt n+1 is base_delay_ms * 2^(n-1).

    Args:
        func: Callable to invoke
        *args: Positional arguments for func
        max_attempts: Total number of attempts (default: 3)
        base_delay_ms: Delay before the first retry in milliseconds
        **kwargs: Keyword arguments for func

    Returns:
        Whatever func returns

    Raises:
        Exception: The first non-retryable error, or the last error once
            all attempts are exhausted
    """
    max_attempts = max(1, max_attempts)
    name = getattr(func, '__name__', repr(func))

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)

        except Exception as e:
            if not is_retryable(e):
                raise

            if attempt < max_attempts:
                # Calculate exponential backoff delay
                delay_ms = base_delay_ms * (2 ** (attempt - 1))
                logger.warning(
                    f"{name} failed (attempt {attempt}/{max_attempts}): {e}. "
                    f"Retrying in {delay_ms} ms..."
                )
                time.sleep(delay_ms / 1000.0)
            else:
                logger.error(
                    f"All {max_attempts} attempts of {name} failed. Last error: {e}"
                )
                raise
