"""
Retry policy for remote calls.

A single exponential backoff helper used wherever a caller decides a
remote call may be retried. Only failures classified as retryable are
retried; everything else is raised immediately.
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from dashboard_sync.errors import SyncError, SyncErrorKind, classify

# Retry configuration defaults
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds

T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_with_backoff(
    operation: Callable[[], T],
    operation_name: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """
    Execute an operation with exponential backoff retry.

    The delay starts at base_delay and doubles after each failed attempt.

    Args:
        operation: Callable to execute
        operation_name: Name for logging purposes
        max_attempts: Total number of attempts including the first one
        base_delay: Delay in seconds before the second attempt

    Returns:
        Result of the operation

    Raises:
        SyncError: The classified failure, once it is not retryable or
            attempts are exhausted
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    delay = base_delay

    for attempt in range(max_attempts):
        try:
            return operation()
        except Exception as e:
            error = classify(e)
            exhausted = attempt >= max_attempts - 1

            if not error.retryable or exhausted:
                if not error.retryable:
                    logger.debug(
                        f"{operation_name} failed with non-retryable "
                        f"{error.kind.value}: {error.message}"
                    )
                else:
                    logger.warning(
                        f"{operation_name} failed after {max_attempts} attempts: "
                        f"{error.message}"
                    )
                if error is e:
                    raise
                raise error from e

            logger.warning(
                f"{operation_name} failed ({error.kind.value}), retrying in "
                f"{delay:.1f}s (attempt {attempt + 1}/{max_attempts})"
            )
            time.sleep(delay)
            delay *= 2

    # Should not reach here, but just in case
    raise SyncError(
        SyncErrorKind.SYNC_FAILED, f"{operation_name} failed after all retries"
    )
