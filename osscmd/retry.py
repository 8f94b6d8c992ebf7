"""Fixed-count retry for transfer work items.

Error classification distinguishes transient failures (worth another
attempt) from permanent ones (retrying won't help).

Transient (Retryable):
- Connection errors and timeouts (OssConnectionError)
- Malformed response bodies (ParseError)
- Local read/write failures (LocalIOError)
- Server errors (5xx) and rate limiting (429)

Permanent (Not Retryable):
- Client errors (4xx except 429)
- Signature mismatches and authentication failures (401/403)
- Anything that is not an OssError
"""

import logging
import time
from typing import Any, Callable, Optional, Sequence

from osscmd.errors import (
    LocalIOError,
    OssConnectionError,
    ParseError,
    StatusError,
)

logger = logging.getLogger(__name__)

# HTTP status codes that indicate transient server issues
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_retryable_error(error: Exception) -> bool:
    """Whether a work item that raised `error` should run again.

    Bulk workers also use this to decide which statuses they may count
    as a per-item failure instead of re-raising.
    """
    if isinstance(error, StatusError):
        return error.status_code in RETRYABLE_STATUS_CODES

    return isinstance(error, (OssConnectionError, ParseError, LocalIOError))


def retry_call(
    func: Callable[..., Any],
    max_attempts: int = 3,
    delays: Sequence[float] = (),
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> Any:
    """Execute a function, retrying transient failures a fixed number of times.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        delays: Optional delays (seconds) between attempts. delays[0] is
                used after the first failure, etc. Empty means retry
                immediately.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.

    Returns:
        The return value of the first successful attempt.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}
    max_attempts = max(1, max_attempts)

    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e

            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                break

            logger.warning("Attempt %d/%d failed: %s", attempt, max_attempts, e)
            if delays:
                time.sleep(delays[min(attempt - 1, len(delays) - 1)])

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts: {last_error}",
        attempts=max_attempts,
        last_error=last_error,
    ) from last_error
