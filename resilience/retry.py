"""Retry with exponential backoff for operations that may fail transiently."""
import functools
import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0

TRANSIENT_PATTERNS = (
    'timeout',
    'timed out',
    'econnreset',
    'econnrefused',
    'etimedout',
    'connection reset',
    'connection aborted',
    'network',
    'rate limit',
    'too many requests',
    'service unavailable',
    '503',
    '429',
    '502',
    '504',
)

PERMANENT_PATTERNS = (
    'not found',
    '404',
    'unauthorized',
    '401',
    'forbidden',
    '403',
    'invalid',
    'malformed',
    'parse error',
    'validation failed',
    'missing required',
)


class PermanentError(Exception):
    """Error that will not go away by retrying."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TransientError(Exception):
    """Error expected to clear up on a later attempt."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


def _matches(error: BaseException, patterns) -> bool:
    message = str(error).lower()
    return any(pattern in message for pattern in patterns)


def categorize_error(error: BaseException) -> str:
    """
    Classify an error as 'permanent', 'transient' or 'unknown'.

    Explicit PermanentError/TransientError win; everything else is
    matched against common message patterns, permanent signals first.
    """
    if isinstance(error, PermanentError):
        return 'permanent'
    if isinstance(error, TransientError):
        return 'transient'
    if isinstance(error, (TimeoutError, ConnectionError)):
        return 'transient'
    if _matches(error, PERMANENT_PATTERNS):
        return 'permanent'
    if _matches(error, TRANSIENT_PATTERNS):
        return 'transient'
    return 'unknown'


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate: only transient errors are retried."""
    if isinstance(error, PermanentError):
        return False
    if isinstance(error, TransientError):
        return True
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    return _matches(error, TRANSIENT_PATTERNS)


def compute_delay(
    attempt: int,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
) -> float:
    """
    Delay to wait before the given attempt.

    Args:
        attempt: 1-indexed attempt number; the first retry is attempt 2
        initial_delay: Delay before the first retry
        max_delay: Upper bound for any delay
        backoff_multiplier: Growth factor per attempt

    Returns:
        min(initial_delay * backoff_multiplier ** (attempt - 2), max_delay)
    """
    exponent = max(0, attempt - 2)
    return min(initial_delay * (backoff_multiplier ** exponent), max_delay)


def retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None
) -> T:
    """
    Call an operation, retrying retryable failures with exponential backoff.

    Args:
        operation: Zero-argument callable to execute
        max_attempts: Total number of attempts, including the first
        initial_delay: Seconds to wait before the first retry
        max_delay: Cap on the wait between attempts
        backoff_multiplier: Growth factor of the wait per attempt
        should_retry: Predicate deciding whether an error is retryable
        on_retry: Called with (error, next_attempt, delay) before each wait

    Returns:
        Result of the operation

    Raises:
        The last error once attempts are exhausted, or immediately for
        errors the predicate rejects
    """
    attempt = 1
    while True:
        try:
            return operation()
        except Exception as e:
            if not should_retry(e) or attempt >= max_attempts:
                raise

            attempt += 1
            delay = compute_delay(
                attempt, initial_delay, max_delay, backoff_multiplier
            )
            if on_retry:
                on_retry(e, attempt, delay)
            else:
                logger.warning(
                    f"Attempt {attempt - 1}/{max_attempts} failed: {e}. "
                    f"Retrying in {delay} seconds..."
                )
            time.sleep(delay)


def retryable(**options) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of retry(); keyword options are passed through."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return retry(lambda: func(*args, **kwargs), **options)
        return wrapper
    return decorator
