"""
Retry utilities with exponential backoff for handling transient failures.

Wraps coroutine functions and backs off with
``asyncio.sleep``, so a retrying day generator never blocks the event loop.
"""

import asyncio
from functools import wraps
from typing import Callable, Type, Tuple
import structlog

from .exceptions import TransientError

logger = structlog.get_logger()


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        retryable_exceptions: Tuple[Type[Exception], ...] = (TransientError,)
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts
            base_delay: Initial delay in seconds before first retry
            max_delay: Maximum delay in seconds between retries
            exponential_base: Base for exponential backoff calculation
            retryable_exceptions: Tuple of exception types that should trigger retries
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_exceptions = retryable_exceptions

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 0-based attempt."""
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)


def retry_with_exponential_backoff(
    config: RetryConfig = None,
    max_attempts: int = None,
    base_delay: float = None,
    max_delay: float = None,
    exponential_base: float = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = None
) -> Callable:
    """
    Decorator for automatic retry with exponential backoff.

    Can be used with a RetryConfig object or individual parameters.

    Args:
        config: RetryConfig object (if provided, other params are ignored)
        max_attempts: Maximum number of attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation
        retryable_exceptions: Tuple of exception types to retry

    Returns:
        Decorated function with retry logic

    Example:
        @retry_with_exponential_backoff(max_attempts=3, base_delay=1.0)
        async def call_model(messages):
            ...
    """
    if config is None:
        config = RetryConfig(
            max_attempts=max_attempts or 3,
            base_delay=base_delay if base_delay is not None else 1.0,
            max_delay=max_delay or 10.0,
            exponential_base=exponential_base or 2.0,
            retryable_exceptions=retryable_exceptions or (TransientError,)
        )

    def _log_retry(func: Callable, attempt: int, error: Exception, delay: float) -> None:
        logger.warning(
            "retry_attempt",
            function=func.__name__,
            attempt=attempt + 1,
            max_attempts=config.max_attempts,
            error=str(error),
            error_type=type(error).__name__,
            retry_delay_seconds=delay
        )

    def _log_exhausted(func: Callable, error: Exception) -> None:
        logger.error(
            "retry_exhausted",
            function=func.__name__,
            attempts=config.max_attempts,
            error=str(error),
            error_type=type(error).__name__
        )

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_attempts - 1:
                        _log_exhausted(func, e)
                        raise
                    delay = config.delay_for(attempt)
                    _log_retry(func, attempt, e, delay)
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
